import os

import uvicorn

from webhook_service.app import create_app

app = create_app()


def main() -> None:
    uvicorn.run(
        app,
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", "5000")),
        log_config=None,
    )


if __name__ == "__main__":
    main()
