import os
import logging

from . import base
from . import data
from .errors import NotFound, PreconditionFailed

logger = logging.getLogger(__name__)


def add_remote(repo, name, path):
    remotes = data.get_remotes(repo)
    if name in remotes:
        raise PreconditionFailed('A remote with that name already exists.')
    remotes[name] = path.replace('/', os.sep)
    data.set_remotes(repo, remotes)


def remove_remote(repo, name):
    remotes = data.get_remotes(repo)
    if name not in remotes:
        raise NotFound('A remote with that name does not exist.')
    del remotes[name]
    data.set_remotes(repo, remotes)


def _open_peer(repo, name):
    remotes = data.get_remotes(repo)
    if name not in remotes:
        raise NotFound('A remote with that name does not exist.')
    path = remotes[name]
    if not os.path.isabs(path): #relative to the working directory it was registered from
        path = os.path.join(repo.work_dir, path)
    peer = data.open_remote(path)
    if not data.is_initialized(peer):
        raise NotFound('Remote directory not found.')
    return peer


def iter_missing_commits(src, dst, oid):
    """Yields the commits reachable from oid in src that dst does not have.

    Ancestors come before their descendants. The walk stops at every commit
    dst already has, since dst then has its whole history too.
    """
    visited = set()
    stack = [(oid, False)]
    while stack:
        oid, expanded = stack.pop()
        if expanded:
            yield oid
            continue
        if not oid or oid in visited or data.has_commit(dst, oid):
            continue
        visited.add(oid)
        commit = data.get_commit(src, oid)
        stack.append((oid, True))
        stack.extend((parent, False) for parent in (commit.merge_parent, commit.parent) if parent)


def transfer(src, dst, oid):
    copied = []
    for oid in iter_missing_commits(src, dst, oid):
        commit = data.get_commit(src, oid)
        for blob in sorted(set(commit.files.values())):
            if not data.has_blob(dst, blob):
                data.put_blob(dst, data.get_blob(src, blob))
        #blobs first, then the commit that names them
        data.put_commit(dst, commit)
        copied.append(oid)
    logger.debug('copied %d commits from %s to %s', len(copied), src.git_dir, dst.git_dir)
    return copied


def push(repo, remote_name, branch):
    peer = _open_peer(repo, remote_name)
    HEAD = base.get_head(repo)
    remote_tip = data.get_branch(peer, branch) or data.ROOT_ID
    if remote_tip not in base.iter_ancestors(repo, [HEAD]):
        raise PreconditionFailed('Please pull down remote changes before pushing.')

    transfer(repo, peer, HEAD)
    data.update_branch(peer, branch, HEAD)
    return HEAD


def fetch(repo, remote_name, branch):
    peer = _open_peer(repo, remote_name)
    remote_tip = data.get_branch(peer, branch)
    if remote_tip is None:
        raise NotFound('That remote does not have that branch.')

    transfer(peer, repo, remote_tip)
    data.update_branch(repo, tracking_branch(remote_name, branch), remote_tip)
    return remote_tip


def tracking_branch(remote_name, branch):
    return f'{remote_name}/{branch}'


def pull(repo, remote_name, branch):
    fetch(repo, remote_name, branch)
    return base.merge(repo, tracking_branch(remote_name, branch))
