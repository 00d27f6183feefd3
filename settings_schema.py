from pydantic import BaseModel, ValidationError, field_validator


class SettingsSchema(BaseModel):
    backend_url: str = ""
    backend_key: str = ""
    user_token: str = ""
    user_id: str = ""
    db_path: str = "goalquest.db"
    request_timeout: float = 10.0
    log_level: str = "INFO"

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"unknown log level: {value}")
        return level

    @field_validator("request_timeout")
    @classmethod
    def _positive_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("request_timeout must be positive")
        return value

    @property
    def uses_remote_backend(self) -> bool:
        return bool(self.backend_url)


def validate_settings(data: dict) -> SettingsSchema:
    try:
        return SettingsSchema(**data)
    except ValidationError as e:
        raise ValueError(str(e))
