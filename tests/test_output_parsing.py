from __future__ import annotations

import allure

from arch_lanes.pipeline.output_parsing import parse_lane_output

pytestmark = [
    allure.epic("Lane Pipeline"),
    allure.feature("Lane Output Parsing"),
]


def test_direct_json_is_returned_as_is() -> None:
    assert parse_lane_output('{"title": "Todo", "risks": []}') == {"title": "Todo", "risks": []}
    assert parse_lane_output("  [1, 2]  ") == [1, 2]


def test_fenced_json_block_is_extracted() -> None:
    text = 'Here is the plan:\n```json\n{"jobs": ["build"], "notes": "ok"}\n```\nThanks!'

    assert parse_lane_output(text) == {"jobs": ["build"], "notes": "ok"}


def test_outermost_object_slice_is_used_when_prose_surrounds_it() -> None:
    text = 'Sure. {"ddl": "CREATE TABLE t (id int);", "tables": [{"name": "t"}]} Hope it helps.'

    assert parse_lane_output(text) == {
        "ddl": "CREATE TABLE t (id int);",
        "tables": [{"name": "t"}],
    }


def test_unparseable_text_falls_back_to_text_wrapper() -> None:
    assert parse_lane_output("Not JSON at all {oops") == {"text": "Not JSON at all {oops"}
    assert parse_lane_output("") == {"text": ""}
    assert parse_lane_output("null") == {"text": "null"}
