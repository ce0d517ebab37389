import os

REQUIRED_IN_PRODUCTION = [
    "DATABASE_URL",
    "ALLOWED_ORIGINS",
]


def validate_env(environment: str) -> None:
    """Refuse to start a production process with defaulted connection settings."""
    if environment != "production":
        return
    missing = [v for v in REQUIRED_IN_PRODUCTION if not os.getenv(v)]
    if missing:
        raise RuntimeError(f"Missing environment variables: {missing}")
