import os
from dataclasses import dataclass

from dotenv import load_dotenv


def load_settings():
    """
    Reads the runtime configuration from the environment (and a .env file if present)
    and returns it as a dict ready to be merged into app.config.
    """
    load_dotenv()

    secret_key = os.getenv('SECRET_KEY')
    if not secret_key:
        raise RuntimeError("SECRET_KEY not set in .env file. Please generate a strong secret key.")

    paystack_secret = os.getenv('PAYSTACK_SECRET_KEY', '')
    origins = os.getenv('ALLOWED_ORIGINS', '')

    return {
        'SECRET_KEY': secret_key,
        # Render and Heroku still hand out postgres:// URLs
        'SQLALCHEMY_DATABASE_URI': os.getenv('DATABASE_URL', 'sqlite:///site.db').replace(
            'postgres://', 'postgresql://', 1),
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'PAYSTACK_SECRET_KEY': paystack_secret,
        # Paystack signs webhooks with the account secret key
        'PAYSTACK_WEBHOOK_SECRET': os.getenv('PAYSTACK_WEBHOOK_SECRET', paystack_secret),
        'PAYSTACK_API_BASE_URL': os.getenv('PAYSTACK_API_BASE_URL', 'https://api.paystack.co'),
        'PAYSTACK_CALLBACK_URL': os.getenv('PAYSTACK_CALLBACK_URL'),
        'PAYSTACK_CURRENCY': os.getenv('PAYSTACK_CURRENCY', 'KES'),
        'PAYSTACK_TIMEOUT': float(os.getenv('PAYSTACK_TIMEOUT', '10')),
        'FRONTEND_URL': os.getenv('FRONTEND_URL'),
        'ALLOWED_ORIGINS': [o.strip() for o in origins.split(',') if o.strip()],
        'ADMIN_USERNAME': os.getenv('ADMIN_USERNAME'),
        'ADMIN_PASSWORD_HASH': os.getenv('ADMIN_PASSWORD_HASH'),
        'ADMIN_TOKEN_HOURS': int(os.getenv('ADMIN_TOKEN_HOURS', '1')),
    }


@dataclass(frozen=True)
class PaymentConfig:
    """Settings the checkout and reconciliation services are built with."""

    secret_key: str
    webhook_secret: str
    api_base_url: str
    callback_url: str | None
    currency: str = 'KES'
    timeout: float = 10.0

    @classmethod
    def from_mapping(cls, config):
        secret_key = config.get('PAYSTACK_SECRET_KEY') or ''
        return cls(
            secret_key=secret_key,
            webhook_secret=config.get('PAYSTACK_WEBHOOK_SECRET') or secret_key,
            api_base_url=(config.get('PAYSTACK_API_BASE_URL') or 'https://api.paystack.co').rstrip('/'),
            callback_url=config.get('PAYSTACK_CALLBACK_URL'),
            currency=config.get('PAYSTACK_CURRENCY') or 'KES',
            timeout=float(config.get('PAYSTACK_TIMEOUT') or 10),
        )
