from __future__ import annotations

import uvicorn

from care_refresh.config import load_settings


def main() -> None:
    settings = load_settings()
    uvicorn.run(
        "care_refresh.monitoring.app:app",
        host=settings.PIPELINE_MONITORING_HOST,
        port=settings.PIPELINE_MONITORING_PORT,
        reload=False,
    )


if __name__ == "__main__":
    main()
