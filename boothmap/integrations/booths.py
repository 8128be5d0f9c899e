"""Fold normalized sheet rows into per-booth entries.

Sheet authors visually merge the booth-id cell when one booth lists
several works, which leaves the id blank on continuation rows.  The
aggregator rebuilds that grouping by carrying the last seen id forward.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from .csv_rows import Row, parse_csv, pick, split_multi

log = logging.getLogger(__name__)


class _Absent:
    """Marker for a field whose source column was empty or missing."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "ABSENT"


ABSENT = _Absent()

Number = Union[int, float]

# ---------------------------------------------------------------------------
# Header aliases, most current spelling first
# ---------------------------------------------------------------------------

BOOTH_ID_KEYS = ["攤位編號"]
NAME_KEYS = ["社團名稱"]
URL_KEYS = ["連結"]
KEYWORD_KEYS = ["Default攤位商品關鍵字(檢索用途)", "預設攤位商品關鍵字(檢索用途)", "關鍵字"]

THEME_KEYS = ["創作主題"]
TAG_KEYS = ["主題標籤", "主題TAG"]
CP_KEYS = ["主要CP / 角色(自填)", "主要CP/角色(自填)", "主要CP / 角色", "主要CP/角色"]
TITLE_KEYS = ["品名(自填)", "品名"]
R18_KEYS = ["是否為R18"]
AUTHOR_KEYS = ["作者(自填)", "作者"]
PRODUCT_TYPE_KEYS = ["商品類別"]
NEW_OR_OLD_KEYS = ["新品/既品"]
PRICE_KEYS = ["售價(自填數字)", "售價"]
ACTION_TYPE_KEYS = ["預定表單 / 宣傳資訊", "預定表單/宣傳資訊"]
ACTION_URL_KEYS = ["關聯連結(填一筆)", "關聯連結"]

R18_PATTERN = re.compile(r"r-?18|^18$|是|yes|true", re.IGNORECASE)
PRICE_PATTERN = re.compile(r"\d[\d,]*(?:\.\d+)?")


def parse_r18(value: Optional[str]) -> Optional[bool]:
    if value is None:
        return None
    return bool(R18_PATTERN.search(value))


def parse_price(value: Optional[str]) -> Union[Number, None, _Absent]:
    """``"1,250元"`` -> 1250, ``"洽詢"`` -> None, no text -> ABSENT."""

    if value is None:
        return ABSENT
    match = PRICE_PATTERN.search(value)
    if not match:
        return None
    digits = match.group(0).replace(",", "")
    if "." in digits:
        return float(digits)
    return int(digits)


def _compact(data: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in data.items() if v is not None and v is not ABSENT}


@dataclass
class WorkItem:
    creation_theme: Optional[str] = None
    theme_tags: Optional[List[str]] = None
    cp_chars: Optional[str] = None
    book_title: Optional[str] = None
    is_r18: Optional[bool] = None
    author: Optional[str] = None
    product_type: Optional[str] = None
    is_new_or_old: Optional[str] = None
    price_raw: Optional[str] = None
    price_num: Union[Number, None, _Absent] = ABSENT
    action_type: Optional[str] = None
    action_url: Optional[str] = None
    raw: Row = field(default_factory=dict)

    @classmethod
    def from_row(cls, row: Row) -> "WorkItem":
        price_raw = pick(row, PRICE_KEYS)
        return cls(
            creation_theme=pick(row, THEME_KEYS),
            theme_tags=split_multi(pick(row, TAG_KEYS)),
            cp_chars=pick(row, CP_KEYS),
            book_title=pick(row, TITLE_KEYS),
            is_r18=parse_r18(pick(row, R18_KEYS)),
            author=pick(row, AUTHOR_KEYS),
            product_type=pick(row, PRODUCT_TYPE_KEYS),
            is_new_or_old=pick(row, NEW_OR_OLD_KEYS),
            price_raw=price_raw,
            price_num=parse_price(price_raw),
            action_type=pick(row, ACTION_TYPE_KEYS),
            action_url=pick(row, ACTION_URL_KEYS),
            raw=row,
        )

    def has_content(self) -> bool:
        return bool(
            self.creation_theme
            or self.theme_tags
            or self.cp_chars
            or self.book_title
            or self.is_r18 is not None
            or self.author
            or self.product_type
            or self.is_new_or_old
            or self.price_raw
            or self.action_type
            or self.action_url
        )

    def to_dict(self) -> Dict[str, Any]:
        data = _compact(
            {
                "creationTheme": self.creation_theme,
                "themeTags": self.theme_tags,
                "cpChars": self.cp_chars,
                "bookTitle": self.book_title,
                "isR18": self.is_r18,
                "author": self.author,
                "productType": self.product_type,
                "isNewOrOld": self.is_new_or_old,
                "priceRaw": self.price_raw,
                "actionType": self.action_type,
                "actionUrl": self.action_url,
            }
        )
        # None is meaningful here: price text present but unparseable.
        if self.price_num is not ABSENT:
            data["priceNum"] = self.price_num
        data["_raw"] = dict(self.raw)
        return data


@dataclass
class BoothEntry:
    id: str
    raw_id: str
    name: Optional[str] = None
    url: Optional[str] = None
    keywords: Optional[List[str]] = None
    items: List[WorkItem] = field(default_factory=list)
    raw_rows: List[Row] = field(default_factory=list)

    def backfill(self, row: Row) -> None:
        """Fill name/url/keywords only where still unset."""

        if not self.name:
            self.name = pick(row, NAME_KEYS)
        if not self.url:
            self.url = pick(row, URL_KEYS)
        if not self.keywords:
            keywords = split_multi(pick(row, KEYWORD_KEYS))
            if keywords:
                self.keywords = keywords

    def to_dict(self) -> Dict[str, Any]:
        data = _compact(
            {
                "id": self.id,
                "rawId": self.raw_id,
                "name": self.name,
                "url": self.url,
                "keywords": self.keywords,
            }
        )
        data["items"] = [item.to_dict() for item in self.items]
        data["_rawRows"] = [dict(r) for r in self.raw_rows]
        return data


@dataclass(frozen=True)
class LoadResult:
    by_id: Dict[str, BoothEntry]
    all: Tuple[BoothEntry, ...]

    def get(self, booth_id: str) -> Optional[BoothEntry]:
        return self.by_id.get(normalize_booth_id(booth_id))

    def to_payload(self) -> Dict[str, Any]:
        entries = [booth.to_dict() for booth in self.all]
        return {
            "byId": [[booth.id, data] for booth, data in zip(self.all, entries)],
            "all": entries,
        }


def normalize_booth_id(raw_id: str) -> str:
    return (raw_id or "").strip().upper()


def aggregate_booths(rows: List[Row]) -> LoadResult:
    by_id: Dict[str, BoothEntry] = {}
    ordered: List[BoothEntry] = []
    last_raw_id: Optional[str] = None
    skipped = 0

    for row in rows:
        row_id = pick(row, BOOTH_ID_KEYS)
        if row_id:
            last_raw_id = row_id
        raw_id = row_id or last_raw_id or ""
        if not raw_id:
            skipped += 1
            continue

        booth_id = normalize_booth_id(raw_id)
        booth = by_id.get(booth_id)
        if booth is None:
            booth = BoothEntry(id=booth_id, raw_id=raw_id)
            booth.backfill(row)
            by_id[booth_id] = booth
            ordered.append(booth)
        else:
            booth.backfill(row)

        item = WorkItem.from_row(row)
        if item.has_content():
            booth.items.append(item)
        booth.raw_rows.append(row)

    if skipped:
        log.debug("Skipped %d rows before the first booth id", skipped)
    log.debug("Aggregated %d rows into %d booths", len(rows), len(ordered))
    return LoadResult(by_id=by_id, all=tuple(ordered))


def normalize_csv(text: str) -> LoadResult:
    return aggregate_booths(parse_csv(text))
