from app.modules.players.api import _escape_like, rank_search_results
from app.schemas.players import PlayerSearchResultOut


def _result(alias: str) -> PlayerSearchResultOut:
    return PlayerSearchResultOut(profile_id=len(alias), current_alias=alias, level=1)


def test_prefix_matches_sort_first_then_alphabetical():
    results = [_result(a) for a in ["xxBoss", "bossman", "Alpha Boss", "Boss", "zeBOSS"]]
    ordered = [r.current_alias for r in rank_search_results(results, "boss")]

    assert ordered == ["Boss", "bossman", "Alpha Boss", "xxBoss", "zeBOSS"]


def test_like_wildcards_are_escaped():
    assert _escape_like("50%_off\\") == "50\\%\\_off\\\\"
