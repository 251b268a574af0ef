import uvicorn

from licensa.core.logging_config import configure_logging
from licensa.core.settings import get_settings


def main():
    settings = get_settings()
    configure_logging(settings.log_file, settings.log_level)
    uvicorn.run(
        "licensa.main:create_app",
        factory=True,
        host=settings.api_host,
        port=settings.api_port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
