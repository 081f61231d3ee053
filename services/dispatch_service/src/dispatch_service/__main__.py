"""Dev entry point: python -m dispatch_service."""
from dispatch_service.app import create_app_from_env
from dispatch_service.config import GatewayConfig


def main() -> None:
    config = GatewayConfig()
    app = create_app_from_env()
    app.run(host=config.host, port=config.port)


if __name__ == "__main__":
    main()
