import os
from dotenv import load_dotenv

load_dotenv()


class Settings:
    def __init__(self):
        self.DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./campus_rides.db")
        self.JWT_SECRET = os.getenv("JWT_SECRET", "devsecret")
        self.JWT_ALG = os.getenv("JWT_ALG", "HS256")
        self.ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", 60 * 24))

        # Outbound email goes through Resend; no key means emails are skipped
        self.RESEND_API_KEY = os.getenv("RESEND_API_KEY")
        self.RESEND_API_URL = os.getenv("RESEND_API_URL", "https://api.resend.com/emails")
        self.EMAIL_FROM = os.getenv("EMAIL_FROM", "Campus Rides <notifications@campusrides.com>")

        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
        self.CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*").split(",")
        self.PORT = int(os.getenv("PORT", 8000))


settings = Settings()
