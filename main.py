import uvicorn

from redblue.core.env import get_env


def main():
    env = get_env()
    uvicorn.run(
        "redblue.app:app",
        host=env.host,
        port=env.port,
        log_level=env.log_level.lower(),
    )


if __name__ == "__main__":
    main()
