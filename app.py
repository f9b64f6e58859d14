import os

import uvicorn

from quizai.logging_config import setup_logging


def main():
    setup_logging()
    uvicorn.run(
        "quizai.api:app",
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
        reload=os.getenv("RELOAD", "").lower() in ("1", "true", "yes"),
    )


if __name__ == "__main__":
    main()
