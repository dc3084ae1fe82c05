from ibdb.models.book import Book, Edition, book_authors
from ibdb.models.author import Author
from ibdb.models.author_merge import AuthorMerge
from ibdb.models.author_similarity import AuthorSimilarity
from ibdb.models.duplicate_scan_run import DuplicateScanRun
from ibdb.models.hardcover_queue import HardcoverQueueEntry

__all__ = [
    "Book",
    "Edition",
    "book_authors",
    "Author",
    "AuthorMerge",
    "AuthorSimilarity",
    "DuplicateScanRun",
    "HardcoverQueueEntry",
]
