import os
import sys
import tempfile


def _configure_environment():
    """Point the application at deterministic, offline settings.

    The API module loads its dataset and favorites store at import time, so the
    environment has to be fixed before any test imports it.  Favorites go to a
    throwaway directory and the Gemini key is removed so no test can reach the
    network.
    """
    root = os.path.dirname(__file__)
    project_root = os.path.dirname(root)
    if project_root not in sys.path:
        sys.path.insert(0, project_root)

    os.environ["ENTHEOGEN_STATE_DIR"] = tempfile.mkdtemp(prefix="entheogen-tests-")
    os.environ.pop("ENTHEOGEN_DATA_DIR", None)
    os.environ.pop("ENTHEOGEN_BRAND", None)
    os.environ.pop("GEMINI_API_KEY", None)


# Ensure settings are in place before tests import the app
_configure_environment()
