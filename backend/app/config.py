"""
Configuration management for the ResaleFlow form engine.
Loads AI provider, storage, job and document settings from environment variables.
"""
import os
from typing import Optional, List
from dotenv import load_dotenv

# Load environment variables from .env file if it exists
load_dotenv()


def _split(value: str) -> List[str]:
    return [item.strip() for item in value.split(',') if item.strip()]


class Config:
    """Configuration class for AI providers, storage and rendering settings."""

    # AI Provider Selection
    # auto picks gemini when GOOGLE_API_KEY is set, then openai, then mock
    AI_PROVIDER: str = os.getenv('AI_PROVIDER', 'auto').lower()
    ENABLE_AI_FALLBACK: bool = os.getenv('ENABLE_AI_FALLBACK', 'false').lower() == 'true'
    AI_PROVIDER_TIMEOUT: int = int(os.getenv('AI_PROVIDER_TIMEOUT', '60'))

    # Gemini (google-genai)
    GOOGLE_API_KEY: Optional[str] = os.getenv('GOOGLE_API_KEY') or os.getenv('GEMINI_API_KEY')
    GEMINI_MODEL: str = os.getenv('GEMINI_MODEL_VISION') or os.getenv('GEMINI_MODEL', 'gemini-2.5-flash')
    GEMINI_FALLBACK_MODELS: List[str] = _split(os.getenv(
        'GEMINI_FALLBACK_MODELS',
        'gemini-2.5-flash,gemini-3-flash-preview,gemini-2.5-pro,gemini-2.5-flash-lite'
    ))

    # OpenAI-compatible chat completions
    OPENAI_API_KEY: Optional[str] = os.getenv('OPENAI_API_KEY')
    OPENAI_API_BASE: str = os.getenv('OPENAI_API_BASE', 'https://api.openai.com/v1')
    OPENAI_MODEL_VISION: str = os.getenv('OPENAI_MODEL_VISION', 'gpt-4o')
    OPENAI_MODEL_TEXT: str = os.getenv('OPENAI_MODEL_TEXT', 'gpt-4o-mini')

    # Rate Limiting
    MAX_TOTAL_CALLS: int = int(os.getenv('MAX_TOTAL_CALLS', '200'))
    ENABLE_RATE_LIMITING: bool = os.getenv('ENABLE_RATE_LIMITING', 'true').lower() == 'true'
    RATE_LIMIT_WINDOW_HOURS: float = float(os.getenv('RATE_LIMIT_WINDOW_HOURS', '24'))

    # PDF Processing
    VISION_SCALE: float = float(os.getenv('VISION_SCALE', '2.0'))
    MAX_UPLOAD_BYTES: int = int(os.getenv('MAX_UPLOAD_BYTES', str(10 * 1024 * 1024)))

    # Signatures
    SIGNATURE_FONT_PATH: Optional[str] = os.getenv('SIGNATURE_FONT_PATH')

    # Analysis Jobs
    JOB_POLL_INTERVAL: float = float(os.getenv('JOB_POLL_INTERVAL', '5'))
    JOB_MAX_ATTEMPTS: int = int(os.getenv('JOB_MAX_ATTEMPTS', '60'))
    JOB_RETENTION_HOURS: int = int(os.getenv('JOB_RETENTION_HOURS', '24'))

    # Object Storage
    STORAGE_BACKEND: str = os.getenv('STORAGE_BACKEND', 'local').lower()
    STORAGE_LOCAL_DIR: str = os.getenv('STORAGE_LOCAL_DIR', 'output/storage')
    S3_BUCKET: Optional[str] = os.getenv('S3_BUCKET')
    S3_PREFIX: str = os.getenv('S3_PREFIX', '')

    # AWS Credentials (S3 storage backend)
    AWS_PROFILE: Optional[str] = os.getenv('AWS_PROFILE')
    AWS_ACCESS_KEY_ID: Optional[str] = os.getenv('AWS_ACCESS_KEY_ID')
    AWS_SECRET_ACCESS_KEY: Optional[str] = os.getenv('AWS_SECRET_ACCESS_KEY')
    AWS_SESSION_TOKEN: Optional[str] = os.getenv('AWS_SESSION_TOKEN')
    AWS_REGION: str = os.getenv('AWS_REGION', 'us-east-1')

    # Document Branding (header/footer of generated PDFs)
    BRAND_NAME: str = os.getenv('BRAND_NAME', 'Goodman Management Group')
    BRAND_TAGLINE: str = os.getenv('BRAND_TAGLINE', 'Professional HOA Management & Settlement Services')
    BRAND_PHONE: str = os.getenv('BRAND_PHONE', '(804) 404-8012')
    BRAND_EMAIL: str = os.getenv('BRAND_EMAIL', 'resales@gmgva.com')
    BRAND_SUPPORT_NAME: str = os.getenv('BRAND_SUPPORT_NAME', 'GMG ResaleFlow')

    # API Settings
    API_HOST: str = os.getenv('API_HOST', '0.0.0.0')
    API_PORT: int = int(os.getenv('API_PORT', '8000'))
    CORS_ORIGINS: list = os.getenv('CORS_ORIGINS', 'http://localhost:3000').split(',')

    @classmethod
    def resolve_ai_provider(cls) -> str:
        """
        Resolve the configured AI provider name.

        Returns:
            One of 'gemini', 'openai' or 'mock'
        """
        if cls.AI_PROVIDER in ('gemini', 'openai', 'mock'):
            return cls.AI_PROVIDER
        if cls.GOOGLE_API_KEY:
            return 'gemini'
        if cls.OPENAI_API_KEY:
            return 'openai'
        return 'mock'

    @classmethod
    def validate(cls) -> bool:
        """
        Validate that configuration is internally consistent.
        """
        if cls.AI_PROVIDER not in ('auto', 'gemini', 'openai', 'mock'):
            raise ValueError(
                f"AI_PROVIDER must be one of auto, gemini, openai, mock (got '{cls.AI_PROVIDER}')"
            )

        if cls.AI_PROVIDER == 'gemini' and not cls.GOOGLE_API_KEY:
            raise ValueError("AI_PROVIDER=gemini requires GOOGLE_API_KEY to be set.")

        if cls.AI_PROVIDER == 'openai' and not cls.OPENAI_API_KEY:
            raise ValueError("AI_PROVIDER=openai requires OPENAI_API_KEY to be set.")

        if cls.STORAGE_BACKEND not in ('local', 's3'):
            raise ValueError(f"STORAGE_BACKEND must be 'local' or 's3' (got '{cls.STORAGE_BACKEND}')")

        if cls.STORAGE_BACKEND == 's3':
            if not cls.S3_BUCKET:
                raise ValueError("STORAGE_BACKEND=s3 requires S3_BUCKET to be set.")

            # Check if temporary credentials (ASIA) are used without session token
            if cls.AWS_ACCESS_KEY_ID and cls.AWS_ACCESS_KEY_ID.startswith('ASIA'):
                if not cls.AWS_SESSION_TOKEN:
                    raise ValueError(
                        "Temporary credentials (ASIA) detected but AWS_SESSION_TOKEN is not set.\n"
                        "Temporary credentials require a session token to work."
                    )

        if cls.JOB_POLL_INTERVAL <= 0 or cls.JOB_MAX_ATTEMPTS <= 0:
            raise ValueError("JOB_POLL_INTERVAL and JOB_MAX_ATTEMPTS must be positive.")

        if cls.VISION_SCALE <= 0:
            raise ValueError("VISION_SCALE must be positive.")
        return True

    @classmethod
    def get_boto3_config(cls) -> dict:
        """
        Get AWS configuration dictionary for boto3.
        """
        config = {'region_name': cls.AWS_REGION}

        if cls.AWS_PROFILE:
            return {'profile_name': cls.AWS_PROFILE, 'region_name': cls.AWS_REGION}
        elif cls.AWS_ACCESS_KEY_ID and cls.AWS_SECRET_ACCESS_KEY:
            config.update({
                'aws_access_key_id': cls.AWS_ACCESS_KEY_ID,
                'aws_secret_access_key': cls.AWS_SECRET_ACCESS_KEY
            })
            if cls.AWS_SESSION_TOKEN:
                config['aws_session_token'] = cls.AWS_SESSION_TOKEN

        return config
