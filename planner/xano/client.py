from flask import current_app, g, session

from planner.xano.api import XanoAPI

SESSION_TOKEN_KEY = "xano_auth_token"
SESSION_TEAM_KEY = "team_id"


def build_xano_client(config, token=None, team_id=None) -> XanoAPI:
    """Create a XanoAPI from a Flask config mapping."""
    return XanoAPI(
        base_url=config.get("XANO_BASE_URL"),
        auth_group=config.get("XANO_AUTH_API_GROUP"),
        api_group=config.get("XANO_API_GROUP"),
        jobs_group=config.get("XANO_JOBS_API_GROUP"),
        token=token,
        team_id=team_id,
        timeout=config.get("XANO_TIMEOUT", 60),
    )


def get_xano_client() -> XanoAPI:
    '''
    Returns the XanoAPI instance for the current request, carrying the
    session's auth token and team id.
    '''
    if "xano_client" not in g:
        g.xano_client = build_xano_client(
            current_app.config,
            token=session.get(SESSION_TOKEN_KEY),
            team_id=session.get(SESSION_TEAM_KEY),
        )
    return g.xano_client
