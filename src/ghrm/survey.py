from typing import Sequence, Set


def survey_repos(names: Sequence[str]) -> Sequence[str]:
    """Ask which repositories to clone; returns the picked names in list order."""

    if len(names) == 0:
        return []

    # survey wraps sys.stdin on import, so load it only when a terminal prompt runs
    from survey import routines

    indexes: Set[int] = routines.basket(  # type: ignore
        f"select repos to clone ({len(names)}): ",
        options=names,
    )
    return [names[index] for index in sorted(indexes)]
