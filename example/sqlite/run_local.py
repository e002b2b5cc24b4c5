import asyncio
import sqlite3

from cosmos_cdc import load_config, open_engine
from cosmos_cdc.utils.logging import configure_logging


def show_rows(db_path: str) -> None:
    conn = sqlite3.connect(db_path)
    for row in conn.execute("SELECT ID, NAME, ISDELETED, TIMESTAMP FROM ORGANIZATION LIMIT 10"):
        print(row)
    print("断点:", conn.execute("SELECT TABLENAME, TIME FROM UPDATETIME").fetchall())
    conn.close()


async def main():
    config = load_config("sync.yaml")
    configure_logging(config.log_level)

    # 每次运行最多 batch_size 条，循环直到追上源端
    async with open_engine(config) as engine:
        while True:
            result = await engine.run_once()
            print(f"拉取 {result.fetched} 条，断点 {result.watermark_after}")
            if result.fetched < config.batch_size:
                break

    show_rows(config.destination.db_path)


if __name__ == "__main__":
    asyncio.run(main())
