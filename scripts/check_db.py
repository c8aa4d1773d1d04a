import asyncio

from sqlalchemy import text

from pdfchat.db.schema import FTS_TABLE
from pdfchat.db.session import DATABASE_URL, make_engine


async def main():
    engine = make_engine(DATABASE_URL)
    async with engine.connect() as conn:
        rows = await conn.execute(
            text(
                "SELECT session_id, COUNT(*) AS n FROM document_chunks "
                "GROUP BY session_id ORDER BY session_id"
            )
        )
        for r in rows:
            print(f"{r.session_id}: {r.n} chunks")
        fts = await conn.execute(text(f"SELECT COUNT(*) FROM {FTS_TABLE}"))
        print(f"{FTS_TABLE}: {fts.scalar()} rows")
    await engine.dispose()

if __name__ == "__main__":
    asyncio.run(main())
