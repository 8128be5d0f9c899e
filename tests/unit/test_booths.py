from __future__ import annotations

from boothmap.integrations.booths import (
    ABSENT,
    WorkItem,
    aggregate_booths,
    normalize_csv,
    parse_price,
    parse_r18,
)
from boothmap.integrations.csv_rows import parse_csv


def test_single_row_creates_one_uppercased_booth():
    result = normalize_csv("攤位編號,社團名稱\na01,Foo\n")
    assert list(result.by_id) == ["A01"]
    booth = result.by_id["A01"]
    assert booth.raw_id == "a01"
    assert booth.name == "Foo"
    assert result.all == (booth,)


def test_continuation_rows_inherit_previous_booth():
    result = normalize_csv("攤位編號,社團名稱,創作主題\nA01,某社,BL\n,,GL\n")
    assert len(result.all) == 1
    booth = result.by_id["A01"]
    assert booth.name == "某社"
    assert [item.creation_theme for item in booth.items] == ["BL", "GL"]
    assert len(booth.raw_rows) == 2


def test_leading_rows_without_booth_id_are_dropped():
    text = "攤位編號,社團名稱,創作主題\n,Orphan,BL\n,,GL\nB02,Real,原創\n"
    result = normalize_csv(text)
    assert list(result.by_id) == ["B02"]
    assert [item.creation_theme for item in result.by_id["B02"].items] == ["原創"]


def test_backfill_never_overwrites_existing_values():
    text = (
        "攤位編號,社團名稱,連結,關鍵字\n"
        "A01,,,\n"
        "a01,First,https://a.example,x|y\n"
        "A01,Second,https://b.example,z\n"
    )
    booth = normalize_csv(text).by_id["A01"]
    assert booth.raw_id == "A01"
    assert booth.name == "First"
    assert booth.url == "https://a.example"
    assert booth.keywords == ["x", "y"]


def test_first_seen_order_is_preserved():
    text = "攤位編號,社團名稱\nC03,c\nA01,a\nB02,b\nA01,again\n"
    assert [b.id for b in normalize_csv(text).all] == ["C03", "A01", "B02"]


def test_separator_rows_produce_no_work_item():
    text = "攤位編號,社團名稱,品名\nA01,Foo,\n,Foo,Book\n"
    booth = normalize_csv(text).by_id["A01"]
    assert [item.book_title for item in booth.items] == ["Book"]
    assert len(booth.raw_rows) == 2


def test_work_item_fields_use_aliases():
    text = (
        "攤位編號,主題TAG,主要CP/角色,品名,是否為R18,作者,商品類別,新品/既品,售價,預定表單/宣傳資訊,關聯連結\n"
        "A01,原創｜BL,A×B,Book,R-18,Me,本子,新品,\"1,250元\",預購,https://form.example\n"
    )
    item = normalize_csv(text).by_id["A01"].items[0]
    assert item.theme_tags == ["原創", "BL"]
    assert item.cp_chars == "A×B"
    assert item.book_title == "Book"
    assert item.is_r18 is True
    assert item.author == "Me"
    assert item.product_type == "本子"
    assert item.is_new_or_old == "新品"
    assert item.price_raw == "1,250元"
    assert item.price_num == 1250
    assert item.action_type == "預購"
    assert item.action_url == "https://form.example"


def test_parse_price_three_states():
    assert parse_price("1,250元") == 1250
    assert parse_price("NT$ 99.5") == 99.5
    assert parse_price("洽詢") is None
    assert parse_price(None) is ABSENT


def test_parse_r18_patterns():
    for value in ("R18", "r-18", "18", "是", "YES", "true"):
        assert parse_r18(value) is True
    assert parse_r18("否") is False
    assert parse_r18("全年齡") is False
    assert parse_r18(None) is None


def test_explicit_non_adult_flag_counts_as_content():
    item = WorkItem.from_row({"是否為R18": "否"})
    assert item.is_r18 is False
    assert item.has_content()


def test_aggregation_is_repeatable():
    rows = parse_csv("攤位編號,社團名稱,創作主題,售價\nA01,某社,BL,100\n,,GL,洽詢\nB02,x,,\n")
    first = aggregate_booths(rows)
    second = aggregate_booths(rows)
    assert first == second
    assert first.by_id["A01"] is not second.by_id["A01"]
    assert first.to_payload() == second.to_payload()


def test_payload_shape_and_price_null_vs_absent():
    result = normalize_csv("攤位編號,社團名稱,品名,售價\nA01,某社,Book,洽詢\n,,Other,\n")
    payload = result.to_payload()
    assert payload["byId"][0][0] == "A01"
    assert payload["byId"][0][1] == payload["all"][0]

    entry = payload["all"][0]
    assert entry["rawId"] == "A01"
    assert "url" not in entry
    assert entry["items"][0]["priceNum"] is None
    assert entry["items"][0]["priceRaw"] == "洽詢"
    assert "priceNum" not in entry["items"][1]
    assert entry["items"][1]["_raw"]["品名"] == "Other"
    assert len(entry["_rawRows"]) == 2


def test_load_result_get_normalizes_lookup_id():
    result = normalize_csv("攤位編號\nA01\n")
    assert result.get(" a01 ") is result.by_id["A01"]
    assert result.get("Z99") is None
