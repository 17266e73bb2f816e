"""
Pydantic model for application configuration.
Provides robust validation for all settings.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


class PartyConfig(BaseModel):
    """A validated configuration model for the application."""

    model_config = ConfigDict(validate_assignment=True, str_strip_whitespace=True)

    # Server
    host: str = "0.0.0.0"
    port: int = 8080

    # Cache & Download Settings
    cache_dir: str
    max_workers: int = 8
    retry_delay: float = 5.0
    max_redirects: int = 10
    max_connection_retries: int = 5

    # Playback
    end_padding: float = 1.0
    search_result_count: int = 10

    # Backends, in registration order, and their per-backend INI sections
    backends: list[str] = Field(default_factory=list)
    backend_options: dict[str, dict[str, str]] = Field(default_factory=dict)

    # Internal fields not loaded from INI file
    config_path: str = Field(..., repr=False)
    log_dir: str | None = Field(default=None, repr=False)

    @field_validator("port")
    @classmethod
    def validate_port(cls, v: int) -> int:
        if v < 1 or v > 65535:
            raise ValueError("Port must be between 1 and 65535.")
        return v

    @field_validator("max_workers")
    @classmethod
    def validate_workers(cls, v: int) -> int:
        """Ensures a reasonable number of download connections."""
        if v < 1 or v > 32:
            raise ValueError("Max workers must be between 1 and 32.")
        return v

    @field_validator("max_redirects", "max_connection_retries")
    @classmethod
    def validate_ceilings(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Retry ceilings must be at least 1.")
        return v

    @field_validator("retry_delay", "end_padding")
    @classmethod
    def validate_non_negative(cls, v: float) -> float:
        if v < 0:
            raise ValueError("Delays cannot be negative.")
        return v

    @field_validator("search_result_count")
    @classmethod
    def validate_result_count(cls, v: int) -> int:
        if v < 1 or v > 200:
            raise ValueError("Search result count must be between 1 and 200.")
        return v

    @field_validator("cache_dir")
    @classmethod
    def validate_cache_dir(cls, v: str) -> str:
        if not v:
            raise ValueError("Cache directory cannot be empty.")
        return v

    @model_validator(mode="after")
    def validate_backends(self) -> "PartyConfig":
        """Checks that every enabled backend has a section declaring its type."""
        if len(set(self.backends)) != len(self.backends):
            raise ValueError("Backend names must be unique.")
        for name in self.backends:
            options = self.backend_options.get(name)
            if options is None:
                raise ValueError(f"Missing [backend:{name}] section.")
            if not options.get("type"):
                raise ValueError(f"Backend '{name}' does not declare a 'type'.")
        return self

    @classmethod
    def get_ini_keys(cls) -> set[str]:
        """Returns a set of all keys that are expected in the INI DEFAULT section."""
        internal_fields = {"config_path", "log_dir", "backend_options"}
        return {key for key in cls.model_fields if key not in internal_fields}
