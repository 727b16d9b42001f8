from mediafetch.traverse import traverse_json


def test_single_string_key_at_top():
    assert traverse_json({"id": 5, "name": "x"}, "id") == 5


def test_key_found_deep_inside():
    data = {"outer": {"inner": [{"skip": 1}, {"target": "found"}]}}
    assert traverse_json(data, "target") == "found"


def test_key_path():
    data = {"a": [{"b": {"c": {"d": 3}}}]}
    assert traverse_json(data, ["b", "c", "d"]) == 3
    assert traverse_json(data, ("c", "d")) == 3


def test_missing_key_returns_none():
    assert traverse_json({"a": {"b": 1}}, "z") is None
    assert traverse_json([1, 2, 3], "a") is None


def test_existing_key_with_dead_path_does_not_search_siblings():
    data = {"a": {"x": 1}, "b": {"a": {"c": 2}}}
    assert traverse_json(data, ["a", "c"]) is None


def test_empty_key_path_returns_data():
    data = {"k": [1, 2]}
    assert traverse_json(data, []) == data


def test_unsupported_keys_type_returns_none():
    assert traverse_json({"1": "one"}, 1) is None
    assert traverse_json({"a": 1}, ["a", 2]) is None


def test_list_at_top_level():
    data = [{"none": None}, {"video": {"url": "clip.mp4"}}]
    assert traverse_json(data, ["video", "url"]) == "clip.mp4"


def test_first_match_in_order():
    data = [{"v": "first"}, {"v": "second"}]
    assert traverse_json(data, "v") == "first"