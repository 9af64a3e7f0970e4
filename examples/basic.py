# Hrana SDK Examples

# Meant to be run with the uv VSCode plug-in: select a block of code and execute it
# as a cell with Shift+Enter, notebook style.
# Each comment starts a cell.

# Load requirements

import asyncio
import random
from dataclasses import dataclass

from dotenv import load_dotenv

from hrana_sdk import Client, Hrana


# Load the environment from .env (LIBSQL_CLIENT_URL, LIBSQL_CLIENT_TOKEN, LIBSQL_CLIENT_BACKEND)
load_dotenv()

FAKE_LOCATIONS = [
    ("WAW", "PL", "Warsaw", 52.22959, 21.0067),
    ("EWR", "US", "Newark", 42.99259, -81.3321),
    ("HAM", "DE", "Hamburg", 50.118801, 7.684300),
    ("HEL", "FI", "Helsinki", 60.3183, 24.9497),
    ("NSW", "AU", "Sydney", -33.9500, 151.1819),
]


# Rows can be read back as dataclasses (or Pydantic models)
@dataclass
class Counter:
    country: str
    city: str
    value: int


async def create_tables(db: Client):
    # Recreate the tables if they do not exist yet
    await db.batch(
        [
            "CREATE TABLE IF NOT EXISTS counter(country TEXT, city TEXT, value, PRIMARY KEY(country, city)) WITHOUT ROWID",
            "CREATE TABLE IF NOT EXISTS coordinates(lat INT, long INT, airport TEXT, PRIMARY KEY (lat, long))",
        ]
    )


async def bump_counter(db: Client):
    # For demo purposes, let's pick a pseudorandom location
    airport, country, city, latitude, longitude = random.choice(FAKE_LOCATIONS)

    # Every statement runs, or none does
    result = await db.atomic_batch(
        [
            ("INSERT OR IGNORE INTO counter VALUES (?, ?, 0)", [country, city]),
            ("UPDATE counter SET value = value + 1 WHERE country = ? AND city = ?", [country, city]),
            ("INSERT OR IGNORE INTO coordinates VALUES (?, ?, ?)", [latitude, longitude, airport]),
        ]
    )
    result.raise_for_error()
    print("Bumped:", city)


async def move_counter(db: Client):
    # Move one point from one city to another inside a transaction
    async with db.transaction() as tx:
        await tx.execute("BEGIN")
        await tx.execute("UPDATE counter SET value = value - 1 WHERE city = ? AND value > 0", ["Warsaw"])
        await tx.execute("INSERT OR IGNORE INTO counter VALUES (?, ?, 0)", ["FI", "Helsinki"])
        await tx.execute("UPDATE counter SET value = value + 1 WHERE city = ?", ["Helsinki"])
    print("Transaction committed:", tx.is_committed)


async def show_counters(db: Client):
    result = await db.execute("SELECT country, city, value FROM counter ORDER BY value DESC")
    for counter in result.to_models(Counter):
        print(counter)


async def main():
    async with Hrana.from_env() as db:
        await create_tables(db)
        await bump_counter(db)
        await move_counter(db)
        await show_counters(db)


if __name__ == "__main__":
    # Run the async function
    asyncio.run(main())
