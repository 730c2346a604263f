class GraderException(Exception):
    """Base exception for all grader-related errors."""
    pass

class DataUnavailableException(GraderException):
    """Raised when the profile or repository list cannot be fetched."""
    pass

class ProfileNotFoundException(DataUnavailableException):
    """Raised when the handle is not registered on GitHub."""
    def __init__(self, handle: str):
        self.handle = handle
        super().__init__(f"GitHub user '{handle}' not found.")

class RateLimitExceededException(DataUnavailableException):
    """Raised when the GitHub REST rate limit is hit."""
    def __init__(self, reset_at: str, message: str = "GitHub API rate limit exceeded."):
        self.reset_at = reset_at
        super().__init__(f"{message} Resets at: {reset_at}")

class NarrativeUnavailableException(GraderException):
    """Raised when the language model call fails or returns unusable output."""
    pass

class DatabaseException(GraderException):
    """Raised when a database operation fails."""
    pass
