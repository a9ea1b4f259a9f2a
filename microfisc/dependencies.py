from fastapi import Depends

from .database import SessionLocal
from .declarations import DeclarationAggregator
from .store import RecordStore, SqlRecordStore
from .tax.rates import RateBook, load_rate_book


def get_rate_book() -> RateBook:
    return load_rate_book()


def get_store() -> RecordStore:
    return SqlRecordStore(SessionLocal)


def get_aggregator(
    store: RecordStore = Depends(get_store),
    rate_book: RateBook = Depends(get_rate_book),
) -> DeclarationAggregator:
    return DeclarationAggregator(store, rate_book)
