import math

from notecharts.dataset.shapes import (
    Flag,
    Items,
    Missing,
    Number,
    Opaque,
    Text,
    Wrapped,
    as_key,
    classify,
    extract_leaf,
    is_missing,
    normalize_dimension,
    normalize_metric,
)

def test_classify_each_shape():
    assert isinstance(classify(None), Missing)
    assert isinstance(classify(float("nan")), Missing)
    assert classify(True) == Flag(True)
    assert classify(3) == Number(3)
    assert classify("x") == Text("x")
    assert classify([1, 2]) == Items((1, 2))
    assert classify({"label": "a", "value": "b"}) == Wrapped("value", "b")
    assert isinstance(classify({"foo": 1}), Opaque)

def test_wrapper_key_precedence():
    # value beats content beats text beats title beats name
    assert extract_leaf({"name": "n", "title": "t"}) == "t"
    assert extract_leaf({"text": "x", "content": "c"}) == "c"
    assert extract_leaf({"type": "p", "content": {"text": "深层"}}) == "深层"

def test_normalize_metric():
    assert normalize_metric(7) == 7
    assert normalize_metric(["a", "b", "c"]) == 3
    assert normalize_metric("12") == 12
    assert normalize_metric(" 1.5 ") == 1.5
    assert normalize_metric({"value": "8"}) == 8
    assert normalize_metric("abc") is None
    assert normalize_metric(True) is None
    assert normalize_metric({"foo": 1}) is None
    assert normalize_metric("nan") is None

def test_normalize_dimension():
    assert normalize_dimension(None) is None
    assert normalize_dimension("工作") == "工作"
    assert normalize_dimension(["a", "", {"value": "b"}]) == "a,b"
    assert normalize_dimension({"type": "p", "content": "正文"}) == "正文"
    assert normalize_dimension({"foo": 1}) == '{"foo":1}'

def test_is_missing_and_as_key():
    assert is_missing(None) and is_missing("") and is_missing(math.nan)
    assert not is_missing(0) and not is_missing(False)
    assert as_key(True) == "true"
    assert as_key(3.0) == "3"
    assert as_key(2.5) == "2.5"
    assert as_key(["a", 1]) == "a,1"
    assert as_key({"k": "主题"}) == '{"k":"主题"}'
