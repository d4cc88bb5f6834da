"""
Library Mirror - Catalog

Architecture:
    models.py   - CatalogItem, Chapter and ArchiveBundle records
    store.py    - JSON catalog of known books per list (db.json)
    sync.py     - Paginated crawler that appends newly saved/finished books
"""
