"""Record-linkage strategies between sheet rows and map placemarks."""
from bidetmap.matchers.record_linker import (
    LinkResult,
    MapIndex,
    SheetIndex,
    link_records,
    locate_sheet_record,
    match,
)

__all__ = ["LinkResult", "MapIndex", "SheetIndex", "link_records", "locate_sheet_record", "match"]
