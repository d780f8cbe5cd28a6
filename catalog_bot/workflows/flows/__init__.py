from .manage import DELETE_FLOW, EDIT_FLOW, FIND_FLOW
from .movie_upload import MOVIE_UPLOAD_FLOW
from .season_upload import ADD_EPISODE_FLOW, ADD_SEASON_FLOW
from .series_upload import SERIES_UPLOAD_FLOW

ALL_FLOWS = (
    MOVIE_UPLOAD_FLOW,
    SERIES_UPLOAD_FLOW,
    ADD_SEASON_FLOW,
    ADD_EPISODE_FLOW,
    EDIT_FLOW,
    DELETE_FLOW,
    FIND_FLOW,
)

__all__ = [
    "ALL_FLOWS",
    "MOVIE_UPLOAD_FLOW",
    "SERIES_UPLOAD_FLOW",
    "ADD_SEASON_FLOW",
    "ADD_EPISODE_FLOW",
    "EDIT_FLOW",
    "DELETE_FLOW",
    "FIND_FLOW",
]
