import os

import pytest

from gitlet import base
from gitlet import data


def write(repo, path, text):
    full = os.path.join(repo.work_dir, *path.split('/'))
    os.makedirs(os.path.dirname(full), exist_ok=True)
    with open(full, 'w', newline='') as f:
        f.write(text)


def read(repo, path):
    with open(os.path.join(repo.work_dir, *path.split('/')), newline='') as f:
        return f.read()


def exists(repo, path):
    return os.path.isfile(os.path.join(repo.work_dir, *path.split('/')))


def commit_files(repo, message, files):
    """Writes, stages and commits a path -> text mapping."""
    for path, text in files.items():
        write(repo, path, text)
        base.add(repo, path)
    return base.commit(repo, message)


@pytest.fixture
def repo(tmp_path):
    work_dir = tmp_path / 'work'
    work_dir.mkdir()
    repo = data.open_repo(str(work_dir))
    base.init(repo)
    return repo


@pytest.fixture
def make_repo(tmp_path):
    def _make(name):
        work_dir = tmp_path / name
        work_dir.mkdir()
        repo = data.open_repo(str(work_dir))
        base.init(repo)
        return repo
    return _make
