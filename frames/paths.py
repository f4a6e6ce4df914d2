import os

from .constants import DATA_DIR_ENV, DB_FILENAME


def get_data_dir():
    # Environment override first.
    base = os.environ.get(DATA_DIR_ENV, "").strip()
    if base:
        data_dir = os.path.expanduser(base)
    else:
        data_dir = os.path.join(os.path.expanduser("~"), ".frames")

    os.makedirs(data_dir, exist_ok=True)
    return data_dir


def get_db_path():
    return os.path.join(get_data_dir(), DB_FILENAME)
