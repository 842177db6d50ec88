from fastapi import FastAPI

from remindbot.api.routers.queues import router as queues_router
from remindbot.api.routers.reminders import router as reminders_router
from remindbot.api.routers.routines import router as routines_router


def create_app() -> FastAPI:
    app = FastAPI(title="Reminder Scheduler API")

    app.include_router(routines_router)
    app.include_router(reminders_router)
    app.include_router(queues_router)

    @app.get("/health")
    def health():
        return {"ok": True}

    return app
