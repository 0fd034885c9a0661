import uvicorn

from orders_service.config import Settings


def run():
    settings = Settings.from_env()
    # startup failure (broker unreachable) makes uvicorn exit non-zero
    uvicorn.run(
        "orders_service.main:create_app",
        factory=True,
        host="0.0.0.0",
        port=settings.port,
    )


if __name__ == "__main__":
    run()
