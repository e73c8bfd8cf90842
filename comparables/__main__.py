import uvicorn

from comparables.config import settings


def main() -> None:
    uvicorn.run("comparables.main:app", host=settings.HOST, port=settings.PORT, reload=False)


if __name__ == "__main__":
    main()
