"""Script to initialize the appointment store and the country databases."""

import asyncio

from app.config import settings
from app.database import CountryDatabase, engine
from app.models.appointments import metadata
from app.schemas.appointments import CountryISO


async def init_db() -> None:
    """Create the appointments table and every country's detail table."""
    async with engine.begin() as conn:
        await conn.run_sync(metadata.create_all)
    await engine.dispose()
    print("✓ Appointment store initialized successfully!")

    for country in CountryISO:
        database = CountryDatabase(country.value, settings.country_database_url(country.value))
        await database.initialize()
        await database.dispose()
        print(f"✓ Database for {country.value} initialized successfully!")


if __name__ == "__main__":
    asyncio.run(init_db())
