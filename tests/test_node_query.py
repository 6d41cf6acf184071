import pytest

from node_errors import ToolExecutionError


def _names(response):
    assert response["success"] is True
    return [record["name"] for record in response["data"]]


def test_default_listing_is_minimal_and_skips_hidden(document, run):
    response = run(document, operation="list")
    assert _names(response) == ["Header", "Logo", "Nav", "Dot", "Card"]
    assert set(response["data"][0]) == {"id", "name", "type"}


def test_filters_switch_detail_to_standard(document, run):
    response = run(document, operation="list", filterByType="RECTANGLE")
    assert _names(response) == ["Logo", "Card"]
    assert response["data"][0]["x"] == 10


def test_explicit_detail_wins(document, run):
    response = run(document, operation="list", filterByType=["frame"], detail="detailed")
    assert response["data"][0]["children"] == ["10:2", "10:3"]


def test_max_depth_one_returns_direct_children(document, run):
    assert _names(run(document, operation="list", maxDepth=1)) == ["Header", "Card"]


def test_children_traversal(document, run):
    assert _names(run(document, operation="list", nodeId="10:1", traversal="children")) == ["Logo", "Nav"]


def test_descendants_include_start_node(document, run):
    assert _names(run(document, operation="list", nodeId="10:3")) == ["Nav", "Dot"]


def test_ancestors_stop_below_page(document, run):
    assert _names(run(document, operation="list", nodeId="10:4", traversal="ancestors")) == ["Nav", "Header"]


def test_siblings_for_several_start_nodes(document, run):
    response = run(document, operation="list", nodeId='["10:2", "10:5"]', traversal="siblings")
    assert _names(response) == ["Nav", "Header"]


def test_page_start_with_depth_limit(document, run):
    response = run(document, operation="list", pageId="0:1", nodeId="0:1", maxDepth=1)
    assert _names(response) == ["Header", "Card"]


def test_visibility_filters(document, run):
    assert _names(run(document, operation="list", filterByVisibility="hidden")) == ["Hidden Star"]
    everything = _names(run(document, operation="list", filterByVisibility="all"))
    assert "Hidden Star" in everything and "Home" not in everything


def test_type_filter_accepts_lowercase_string(document, run):
    response = run(document, operation="list", filterByType="star", filterByVisibility="all")
    assert _names(response) == ["Hidden Star"]


def test_name_filter_is_case_insensitive_search(document, run):
    assert _names(run(document, operation="list", filterByName="^(logo|card)$")) == ["Logo", "Card"]
    assert _names(run(document, operation="list", filterByName="o")) == ["Logo", "Dot"]


def test_locked_filter(document, run):
    assert _names(run(document, operation="list", filterByLockedState=True)) == ["Card"]
    assert "Card" not in _names(run(document, operation="list", filterByLockedState=False))


def test_max_results_truncates_after_filtering(document, run):
    assert _names(run(document, operation="list", maxResults=2)) == ["Header", "Logo"]
    assert _names(run(document, operation="list", filterByType="ELLIPSE", maxResults=1)) == ["Dot"]
    assert len(run(document, operation="list", maxResults=0)["data"]) == 5


def test_page_id_loads_the_page(document, run):
    archive = document.find_page("0:2")
    assert not archive.loaded
    assert _names(run(document, operation="list", pageId="0:2")) == ["Old Frame", "Old Triangle"]
    assert archive.loaded


def test_unknown_page_lists_available_pages(document, run):
    with pytest.raises(ToolExecutionError) as excinfo:
        run(document, operation="list", pageId="9:9")
    assert excinfo.value.code == "page_not_found"
    assert "Home (0:1)" in excinfo.value.message
    assert "Archive (0:2)" in excinfo.value.message


def test_invalid_regex_fails_before_loading_pages(document, run):
    with pytest.raises(ToolExecutionError) as excinfo:
        run(document, operation="list", pageId="0:2", filterByName="(")
    assert excinfo.value.code == "invalid_regex"
    assert not document.find_page("0:2").loaded


def test_node_on_unloaded_page_needs_all_pages(document, run):
    with pytest.raises(ToolExecutionError) as excinfo:
        run(document, operation="list", nodeId="20:1")
    assert excinfo.value.code == "node_not_found"

    response = run(document, operation="list", nodeId="20:1", includeAllPages=True)
    assert _names(response) == ["Old Frame", "Old Triangle"]


def test_page_scoped_start_lookup(document, run):
    with pytest.raises(ToolExecutionError) as excinfo:
        run(document, operation="list", pageId="0:1", nodeId="20:1")
    assert excinfo.value.code == "node_not_found"
    assert "Home" in excinfo.value.message


def test_include_all_pages_keeps_page_nodes(document, run):
    response = run(document, operation="list", includeAllPages=True)
    assert _names(response) == [
        "Home", "Header", "Logo", "Nav", "Dot", "Card",
        "Archive", "Old Frame", "Old Triangle",
    ]


@pytest.mark.parametrize(
    "bad_params",
    [
        {"traversal": "sideways"},
        {"filterByVisibility": "sometimes"},
        {"detail": "verbose"},
    ],
)
def test_invalid_list_parameters(document, run, bad_params):
    with pytest.raises(ToolExecutionError) as excinfo:
        run(document, operation="list", **bad_params)
    assert excinfo.value.code == "invalid_parameter"


@pytest.mark.parametrize("empty_ids", [[], "[]"])
def test_empty_start_set_selects_nothing(document, run, empty_ids):
    response = run(document, operation="list", nodeId=empty_ids)
    assert response == {"success": True, "data": []}
