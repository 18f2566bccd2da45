from pydantic_settings import BaseSettings
from typing import Literal


class Settings(BaseSettings):
    APP_NAME: str = "Learn Me"
    AUTH_MODE: Literal["jwt", "mock"] = "jwt"

    SECRET_KEY: str = "change-me"
    TOKEN_ALGORITHM: str = "HS256"
    TOKEN_TTL_MINUTES: int = 60 * 12
    RESET_TOKEN_TTL_MINUTES: int = 15

    SUPABASE_URL: str = ""
    SUPABASE_KEY: str = ""
    SUPABASE_SERVICE_KEY: str = ""

    SUBJECT_FILES_BUCKET: str = "subject-files"
    MESSAGE_FILES_BUCKET: str = "message-files"

    CORS_ORIGINS: str = "http://localhost:5173"
    LOG_LEVEL: str = "INFO"

    # "rpc" delegates MCQ scoring to auto_grade_mcq_submission
    AUTO_GRADE_MODE: Literal["rpc", "local"] = "rpc"
    ATTENDANCE_THRESHOLD: float = 75.0

    EMAILJS_SERVICE_ID: str = ""
    EMAILJS_PUBLIC_KEY: str = ""
    EMAILJS_PRIVATE_KEY: str = ""
    EMAILJS_WELCOME_TEMPLATE_ID: str = ""
    EMAILJS_RESET_TEMPLATE_ID: str = ""

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]


settings = Settings()
