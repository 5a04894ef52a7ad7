"""Objects shared by the public app and the admin router."""

from pathlib import Path

from fastapi.templating import Jinja2Templates
from sqlalchemy.ext.asyncio import AsyncSession

from .config import DATABASE_URL, SITE_NAME
from .helpers import fmt_date, fmt_datetime, fmt_number, localized
from .infra.sql import make_async_engine

HERE = Path(__file__).parent

templates = Jinja2Templates(directory=str(HERE / "templates"))
templates.env.filters["number"] = fmt_number
templates.env.filters["date"] = fmt_date
templates.env.filters["datetime"] = fmt_datetime
templates.env.globals["localized"] = localized
templates.env.globals["site_name"] = SITE_NAME

engine, SessionAsync = make_async_engine(DATABASE_URL)


async def get_db() -> AsyncSession:
    async with SessionAsync() as session:
        yield session
