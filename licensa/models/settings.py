from sqlalchemy import Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from licensa.models.license import Base

DEFAULT_SMTP_PORT = 587


class AppSettings(Base):
    """Singleton row holding notification channel credentials."""

    __tablename__ = "settings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    discord_token: Mapped[str | None] = mapped_column(Text, nullable=True)
    discord_admin_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    discord_logs_channel_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    discord_update_channel_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    smtp_host: Mapped[str | None] = mapped_column(String(255), nullable=True)
    smtp_port: Mapped[int] = mapped_column(Integer, default=DEFAULT_SMTP_PORT, nullable=False)
    smtp_user: Mapped[str | None] = mapped_column(String(255), nullable=True)
    smtp_password: Mapped[str | None] = mapped_column(Text, nullable=True)
    smtp_from: Mapped[str | None] = mapped_column(String(255), nullable=True)
    license_email_template: Mapped[str | None] = mapped_column(Text, nullable=True)
