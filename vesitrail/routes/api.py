from flask import Blueprint, current_app, jsonify, request

from vesitrail.exceptions import NetworkError, ParseError
from vesitrail.services import releases

bp = Blueprint("api", __name__)


@bp.route("/github")
def github():
    """Latest stable release (type=release) or repository stars (type=stars)."""
    kind = request.args.get("type")
    config = current_app.config

    try:
        if kind == "release":
            release = releases.get_cached_release(config)
            if release is None:
                return jsonify(error="No stable release available"), 404
            response = jsonify(release.to_endpoint_dict())
            max_age = config.get("RELEASE_CACHE_SECONDS", 1800)
        elif kind == "stars":
            response = jsonify(stars=releases.get_cached_stars(config))
            max_age = config.get("STARS_CACHE_SECONDS", 3600)
        else:
            return jsonify(error="Invalid type parameter. Use 'release' or 'stars'"), 400
    except (NetworkError, ParseError) as exc:
        current_app.logger.error("GitHub request failed: %s", exc)
        return jsonify(error="Failed to fetch data from GitHub"), 500

    response.headers["Cache-Control"] = f"public, max-age={max_age}, stale-while-revalidate={max_age * 2}"
    return response
