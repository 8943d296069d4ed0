"""Run the API with ``python -m irb_review`` or the ``irb-review`` script."""
from __future__ import annotations

import uvicorn

from irb_review.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run("irb_review.main:app", host=settings.host, port=settings.port)


if __name__ == "__main__":
    main()
