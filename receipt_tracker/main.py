from dotenv import load_dotenv

load_dotenv()

import logging  # noqa: E402

from fastapi import FastAPI  # noqa: E402

from receipt_tracker.api.admin import router as admin_router  # noqa: E402
from receipt_tracker.api.auth import router as auth_router  # noqa: E402
from receipt_tracker.api.categories import router as categories_router  # noqa: E402
from receipt_tracker.api.receipts import router as receipts_router  # noqa: E402
from receipt_tracker.utils.logging_utils import configure_logging  # noqa: E402

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    configure_logging()

    app = FastAPI(
        title="Receipt Tracker",
        description="Expense receipt submission, review and reimbursement.",
        version="0.1.0",
    )

    @app.get("/health", tags=["health"])
    def health_check():
        """Health check endpoint."""
        return {"status": "healthy"}

    app.include_router(auth_router)
    app.include_router(categories_router)
    app.include_router(receipts_router)
    app.include_router(admin_router)

    logger.info("Receipt Tracker app initialised")
    return app


app = create_app()
