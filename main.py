import sys

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from app.api.routes import router
from app.config import get_settings
from app.deps import ledger

settings = get_settings()

logger.remove()
logger.add(
    sys.stderr,
    level=settings.log_level.upper(),
    format="{time:HH:mm:ss} | {level:<7} | {message}",
)

app = FastAPI(title="Expense Ledger", version="0.1.0")
app.state.bot = None

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    response: Response = await call_next(request)
    logger.info("{} {} → {}", request.method, request.url.path, response.status_code)
    return response


app.include_router(router)


async def start_bot():
    from app.bot.handler import build_bot_app

    bot_app = build_bot_app()
    await bot_app.initialize()
    await bot_app.start()
    await bot_app.updater.start_polling(drop_pending_updates=True)
    app.state.bot = bot_app
    logger.info("Telegram bot polling for expense messages")


async def stop_bot():
    bot_app = app.state.bot
    if bot_app is None:
        return
    await bot_app.updater.stop()
    await bot_app.stop()
    await bot_app.shutdown()
    app.state.bot = None
    logger.info("Telegram bot stopped")


@app.on_event("startup")
async def startup():
    """Write the ledger header row if needed, then start the bot when a token is configured."""
    try:
        ledger.initialize()
    except Exception as e:
        logger.error("Failed to initialize ledger sheet: {}", e)

    if not settings.telegram_bot_token:
        logger.warning("TELEGRAM_BOT_TOKEN not set, running the HTTP API only")
        return
    await start_bot()


@app.on_event("shutdown")
async def shutdown():
    await stop_bot()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host=settings.api_host, port=settings.api_port, reload=True)
