import logging
from typing import List, Optional, Sequence

from openai import AsyncOpenAI, OpenAIError
from pydantic import ValidationError

from profile_grader.domain.exceptions import NarrativeUnavailableException
from profile_grader.domain.models import (
    BREAKDOWN_MAXIMA,
    Narrative,
    Profile,
    ProfileScore,
    Repository,
    Verdict,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4o-mini"

FACTOR_LABELS = {
    "documentation": "Documentation",
    "code_quality": "Code Quality",
    "activity": "Activity",
    "technical_depth": "Technical Depth",
    "impact": "Impact",
    "collaboration": "Collaboration",
    "organization": "Organization",
}

# Generic phrasing used when the model is unavailable, keyed by breakdown field.
FACTOR_STRENGTHS = {
    "documentation": "Well-documented projects with useful READMEs",
    "code_quality": "Consistent project structure with tests and tooling",
    "activity": "Steady, recent commit activity",
    "organization": "Repositories are described and tagged",
    "impact": "Projects that attract stars or ship live demos",
    "technical_depth": "Work spans backend, data and infrastructure concerns",
    "collaboration": "Repositories are set up for outside contributors",
}
FACTOR_RED_FLAGS = {
    "documentation": "Sparse or missing READMEs",
    "code_quality": "Little evidence of tests, linting or lockfiles",
    "activity": "Few recent pushes",
    "organization": "Repositories lack descriptions and topics",
    "impact": "Limited external traction",
    "technical_depth": "Projects look shallow or narrowly scoped",
    "collaboration": "No contribution guidelines or issue templates",
}
FACTOR_IMPROVEMENTS = {
    "documentation": "Add READMEs with install, usage and tech-stack sections",
    "code_quality": "Add a test suite, a linter config and commit lockfiles",
    "activity": "Push small, regular updates to your main projects",
    "organization": "Write a one-line description and add topics to every repository",
    "impact": "Deploy a live demo and link it as the repository homepage",
    "technical_depth": "Build a project with a real backend, persistence layer and CI",
    "collaboration": "Add CONTRIBUTING.md and issue templates under .github",
}

SYSTEM_PROMPT = """\
You are a senior technical recruiter auditing GitHub profiles. \
Reply with a single JSON object and nothing else."""

USER_PROMPT = """\
Analyze this GitHub profile data:
Username: {login}
Bio: {bio}
Total Public Repos: {public_repos}
Followers: {followers}

Scores (out of 100 total):
- Overall: {overall}
{factor_lines}

Penalties applied:
{penalty_lines}

Top 5 Repositories:
{repo_lines}

Return JSON with exactly these keys:
- "verdict": one of "Hire Ready", "Improving", "Weak"
- "strengths": 3-4 key strengths (array of strings)
- "redFlags": 2-3 red flags or areas of concern (array of strings)
- "improvements": 4 specific, actionable improvements (array of strings)
- "summary": a 2-sentence professional summary (string)
"""


def verdict_for(overall: int) -> Verdict:
    if overall >= 85:
        return "Hire Ready"
    if overall >= 60:
        return "Improving"
    return "Weak"


def _ranked_factors(score: ProfileScore) -> List[str]:
    """Breakdown fields ordered from strongest to weakest relative to their maxima."""
    ratios = {
        name: getattr(score.breakdown, name) / limit
        for name, limit in BREAKDOWN_MAXIMA.items()
    }
    return sorted(BREAKDOWN_MAXIMA, key=lambda name: ratios[name], reverse=True)


def fallback_narrative(profile: Profile, score: ProfileScore) -> Narrative:
    """Deterministic critique derived from the numeric score alone."""
    ranked = _ranked_factors(score)
    strongest, weakest = ranked[:3], ranked[-3:][::-1]

    red_flags = [FACTOR_RED_FLAGS[name] for name in weakest[:2]]
    red_flags.extend(penalty.reason for penalty in score.penalties)

    verdict = verdict_for(score.overall)
    return Narrative(
        verdict=verdict,
        strengths=[FACTOR_STRENGTHS[name] for name in strongest],
        red_flags=red_flags,
        improvements=[FACTOR_IMPROVEMENTS[name] for name in ranked[::-1][:4]],
        summary=(
            f"{profile.login} scores {score.overall}/100, strongest in "
            f"{FACTOR_LABELS[strongest[0]].lower()} and weakest in {FACTOR_LABELS[weakest[0]].lower()}. "
            f"Overall the profile reads as {verdict.lower()}."
        ),
        is_fallback=True,
    )


def build_prompt(profile: Profile, repositories: Sequence[Repository], score: ProfileScore) -> str:
    factor_lines = "\n".join(
        f"- {FACTOR_LABELS[name]}: {getattr(score.breakdown, name):g}/{limit}"
        for name, limit in BREAKDOWN_MAXIMA.items()
    )
    penalty_lines = "\n".join(
        f"- {p.code} (-{p.points}): {p.reason}" for p in score.penalties
    ) or "- none"
    repo_lines = "\n".join(
        f"- {r.name}: {r.description or 'No description'} ({r.language or 'Unknown'})"
        for r in repositories[:5]
    ) or "- none"
    return USER_PROMPT.format(
        login=profile.login,
        bio=profile.bio or "N/A",
        public_repos=profile.public_repos,
        followers=profile.followers,
        overall=score.overall,
        factor_lines=factor_lines,
        penalty_lines=penalty_lines,
        repo_lines=repo_lines,
    )


def parse_narrative(content: Optional[str]) -> Narrative:
    """Strictly validates model output. Raises NarrativeUnavailableException on anything malformed."""
    text = (content or "").strip()
    if not text:
        raise NarrativeUnavailableException("Empty response from language model.")
    try:
        narrative = Narrative.model_validate_json(text)
    except ValidationError as e:
        raise NarrativeUnavailableException(f"Malformed narrative: {e.error_count()} validation error(s).") from e
    if narrative.is_fallback:
        raise NarrativeUnavailableException("Language model output claims to be a fallback narrative.")
    return narrative


class NarrativeGenerator:
    """
    Pairs a computed score with a recruiter-style critique from an
    OpenAI-compatible chat completion API.

    Exactly one of two paths produces the result: the validated model output,
    or `fallback_narrative` when the call fails or its output does not validate.
    """

    def __init__(self, api_key: Optional[str], base_url: str = DEFAULT_BASE_URL, model: str = DEFAULT_MODEL):
        self.client = AsyncOpenAI(api_key=api_key, base_url=base_url) if api_key else None
        self.model = model

    async def generate(
        self,
        profile: Profile,
        repositories: Sequence[Repository],
        score: ProfileScore,
    ) -> Narrative:
        if self.client is None:
            logger.info("No language model configured. Using fallback narrative.")
            return fallback_narrative(profile, score)

        try:
            return await self._request(profile, repositories, score)
        except NarrativeUnavailableException as e:
            logger.warning(f"Narrative unavailable for '{profile.login}': {e}. Using fallback.")
            return fallback_narrative(profile, score)

    async def _request(
        self,
        profile: Profile,
        repositories: Sequence[Repository],
        score: ProfileScore,
    ) -> Narrative:
        try:
            resp = await self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": build_prompt(profile, repositories, score)},
                ],
                response_format={"type": "json_object"},
                temperature=0.3,
            )
        except OpenAIError as e:
            raise NarrativeUnavailableException(str(e)) from e

        if not resp.choices:
            raise NarrativeUnavailableException("Language model returned no choices.")
        narrative = parse_narrative(resp.choices[0].message.content)
        logger.info(f"Narrative for '{profile.login}': {narrative.verdict}.")
        return narrative
