from notecharts.utils.fp import clamp01, first_or, frequencies, take, try_or, unique_stable

def test_try_or_returns_default_on_error():
    to_int = try_or(-1)(int)
    assert to_int("3") == 3
    assert to_int("x") == -1
    assert to_int(None) == -1

def test_unique_stable_keeps_first_seen_order():
    assert unique_stable(["b", "a", "b", "c", "a"]) == ["b", "a", "c"]

def test_take_and_first_or():
    assert take(2, iter([1, 2, 3])) == [1, 2]
    assert take(-1, [1]) == []
    assert first_or([], "d") == "d"
    assert first_or([5, 6]) == 5

def test_frequencies_in_first_appearance_order():
    assert list(frequencies(["x", "y", "x"]).items()) == [("x", 2), ("y", 1)]

def test_clamp01():
    assert clamp01(1.7) == 1.0
    assert clamp01(-2) == 0.0
    assert clamp01("0.25") == 0.25
    assert clamp01(float("nan")) == 0.0
    assert clamp01(None) == 0.0
