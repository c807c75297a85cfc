import argparse
import asyncio
import os
import sys

# Aggiungi backend/ alla PYTHONPATH per importare app.* senza installare il pacchetto
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "backend"))

from app.core.database import close_db, create_tables, drop_tables


async def reset(drop: bool):
    if drop:
        print("Connessione al database, eliminazione tabella vendite...")
        await drop_tables()
    print("Creazione tabella client_sales_tracker...")
    await create_tables()
    await close_db()
    print("Database pronto!")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Crea (o ricrea) la tabella delle vendite")
    parser.add_argument("--drop", action="store_true", help="Elimina la tabella prima di ricrearla")
    args = parser.parse_args()
    asyncio.run(reset(args.drop))
