from remindbot.logging_utils import configure_logging
from remindbot.main import create_app
from remindbot.settings import settings

configure_logging(settings.LOG_LEVEL)
app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "run_local:app",
        host=settings.APP_HOST,
        port=settings.APP_PORT,
        reload=False,
    )
