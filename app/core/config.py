from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        validate_assignment=True,
    )

    app_env: str = "dev"
    database_url: str
    log_level: str = "INFO"

    # Infobip WhatsApp (outbound messaging)
    infobip_base_url: str | None = None  # e.g. https://xxxxx.api.infobip.com
    infobip_api_key: str | None = None
    infobip_whatsapp_sender: str | None = None  # Registered WhatsApp sender number
    infobip_dry_run: bool = True  # Set to False in production to enable real sending

    admin_api_key: str | None = (
        None  # Optional - if not set, admin triggers are unprotected (dev mode)
    )

    # Realtime fan-out of recorded answers (Redis pub/sub)
    realtime_redis_url: str | None = None
    realtime_channel: str | None = "quiz-answers"  # Empty disables publishing

    # Onboarding / closing sequence
    welcome_text: str = "Thanks for joining 😄 let's have some fun"
    onboarding_media_url: str = (
        "https://encrypted-tbn0.gstatic.com/images?q=tbn:ANd9GcT2Y2aFqUbRHfMnxOthwedrzyeXGXjLhUIy-A&usqp=CAU"
    )
    closing_message: str | None = "Wait for the questions to come in"  # Empty disables

    # Coupon sequence: intro texts, then the code itself, then follow-up texts
    coupon_intro_messages: list[str] = [
        "Your €20 coupon code to use on the infobip platform is valid for 14 days. "
        "To register an account head to https://r.elsmore.me/3rsyW38, and apply the "
        "following code in the referrals section in the bottom left:",
    ]
    coupon_followup_messages: list[str] = [
        "Any questions, need help, or just want to chat head to our discord at "
        "https://discord.com/invite/G9Gr6fk2e4",
        "And for those that care, my slide https://r.elsmore.me/3LD7iHK",
    ]

    # Inbound idempotency: skip redelivered (provider, messageId) pairs
    inbound_dedupe_enabled: bool = True


# Settings will load from environment variables or .env file
# Required fields will raise ValidationError if missing (fail-fast)
settings = Settings()
