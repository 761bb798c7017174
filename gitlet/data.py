#serves as disk: everything that lives inside .gitlet is read and written here
import os
import hashlib
import itertools
import json
import logging
import operator
import string
import types

from collections import namedtuple
from contextlib import contextmanager
from urllib.parse import quote, unquote

from .errors import Ambiguous, NotFound, ValidationError

logger = logging.getLogger(__name__)

GIT_DIR_NAME = '.gitlet'
OID_LENGTH = 40
DEFAULT_BRANCH = 'master'
ROOT_MESSAGE = 'initial commit'

#one value per repository, passed to every operation instead of a global GIT_DIR
Repo = namedtuple('Repo', ['work_dir', 'git_dir'])

Commit = namedtuple('Commit', ['timestamp', 'parent', 'merge_parent', 'message', 'files'])


def open_repo(work_dir):
    work_dir = os.path.abspath(work_dir)
    return Repo(work_dir=work_dir, git_dir=os.path.join(work_dir, GIT_DIR_NAME))


def open_remote(path):
    """Builds the Repo of a peer store.

    The path may point at the peer's .gitlet directory (the form add-remote
    is usually given) or at the working directory that contains it.
    """
    path = os.path.abspath(path.replace('/', os.sep))
    if os.path.basename(path) == GIT_DIR_NAME:
        return Repo(work_dir=os.path.dirname(path), git_dir=path)
    return open_repo(path)


def is_initialized(repo):
    return os.path.isdir(repo.git_dir)


def _path(repo, *parts):
    return os.path.join(repo.git_dir, *parts)


def init(repo): #makes .gitlet with its namespaces, the root commit and master
    if is_initialized(repo):
        raise ValidationError('A Gitlet version-control system already exists in the current directory.')
    os.makedirs(_path(repo, 'commits'))
    os.makedirs(_path(repo, 'blobs'))
    os.makedirs(_path(repo, 'refs', 'heads'))
    root = put_commit(repo, ROOT_COMMIT)
    update_branch(repo, DEFAULT_BRANCH, root)
    set_head_branch(repo, DEFAULT_BRANCH)
    return root


def is_oid(name):
    return len(name) == OID_LENGTH and all(c in string.hexdigits for c in name)


def _frame(type_, payload): #type name, NUL, payload: the bytes that are both hashed and stored
    return type_.encode() + b'\x00' + payload


def _write_object(repo, namespace, obj):
    oid = hashlib.sha1(obj).hexdigest()
    path = _path(repo, namespace, oid)
    if os.path.isfile(path): #write once, same content same key
        logger.debug('%s already has %s', namespace, oid[:10])
        return oid
    with open(path, 'wb') as out:
        out.write(obj)
    logger.debug('stored %s in %s (%d bytes)', oid[:10], namespace, len(obj))
    return oid


def _read_object(repo, namespace, oid, expected):
    path = _path(repo, namespace, oid or '')
    if not oid or not is_oid(oid) or not os.path.isfile(path):
        return None
    with open(path, 'rb') as f:
        type_, _, content = f.read().partition(b'\x00')
    if type_.decode() != expected:
        logger.warning('%s in %s is a %s, expected %s', oid[:10], namespace, type_.decode(), expected)
        return None
    return content


def hash_blob(content):
    return hashlib.sha1(_frame('blob', content)).hexdigest()


def put_blob(repo, content):
    return _write_object(repo, 'blobs', _frame('blob', content))


def get_blob(repo, oid):
    content = _read_object(repo, 'blobs', oid, 'blob')
    if content is None:
        raise NotFound(f'No blob with id {oid}.')
    return content


def has_blob(repo, oid):
    return bool(oid) and is_oid(oid) and os.path.isfile(_path(repo, 'blobs', oid))


def make_commit(timestamp, parent, merge_parent, message, files):
    for path in files:
        if not path or '\n' in path:
            raise ValidationError(f'Cannot record path {path!r}.')
    #read-only view so nobody edits a stored snapshot through the returned map
    return Commit(timestamp=int(timestamp), parent=parent, merge_parent=merge_parent,
                  message=message, files=types.MappingProxyType(dict(files)))


def encode_commit(commit):
    lines = [f'timestamp {commit.timestamp}\n']
    if commit.parent:
        lines.append(f'parent {commit.parent}\n')
    if commit.merge_parent:
        lines.append(f'merge-parent {commit.merge_parent}\n')
    for path in sorted(commit.files):
        lines.append(f'file {commit.files[path]} {path}\n')
    lines.append('\n')
    lines.append(commit.message)
    return ''.join(lines).encode()


def decode_commit(payload):
    timestamp, parent, merge_parent = 0, None, None
    files = {}
    lines = iter(payload.decode().split('\n'))
    for line in itertools.takewhile(operator.truth, lines): #header ends at the first empty line
        key, value = line.split(' ', 1)
        if key == 'timestamp':
            timestamp = int(value)
        elif key == 'parent':
            parent = value
        elif key == 'merge-parent':
            merge_parent = value
        elif key == 'file':
            oid, path = value.split(' ', 1)
            files[path] = oid
        else:
            raise ValueError(f'Unknown field {key}')
    message = '\n'.join(lines)
    return make_commit(timestamp, parent, merge_parent, message, files)


def commit_id(commit):
    return hashlib.sha1(_frame('commit', encode_commit(commit))).hexdigest()


def put_commit(repo, commit):
    return _write_object(repo, 'commits', _frame('commit', encode_commit(commit)))


def get_commit(repo, oid):
    payload = _read_object(repo, 'commits', oid, 'commit')
    if payload is None:
        raise NotFound('No commit with that id exists.')
    return decode_commit(payload)


def has_commit(repo, oid):
    return bool(oid) and is_oid(oid) and os.path.isfile(_path(repo, 'commits', oid))


def iter_commit_ids(repo):
    return iter(sorted(name for name in os.listdir(_path(repo, 'commits')) if is_oid(name)))


def resolve_short(repo, prefix):
    if len(prefix) == OID_LENGTH and has_commit(repo, prefix):
        return prefix
    matches = [oid for oid in iter_commit_ids(repo) if prefix and oid.startswith(prefix)]
    if not matches:
        raise NotFound('No commit with that id exists.')
    if len(matches) > 1:
        raise Ambiguous(prefix, matches)
    return matches[0]


ROOT_COMMIT = make_commit(0, None, None, ROOT_MESSAGE, {})
ROOT_ID = commit_id(ROOT_COMMIT)


def escape_branch_name(name): #origin/master -> origin%2Fmaster, one file per branch
    if name in ('', '.', '..'):
        raise ValidationError(f'Invalid branch name {name!r}.')
    return quote(name, safe='')


def unescape_branch_name(name):
    return unquote(name)


def _branch_path(repo, name):
    return _path(repo, 'refs', 'heads', escape_branch_name(name))


def get_branch(repo, name): #returns the commit id the branch points to, None if there is no such branch
    path = _branch_path(repo, name)
    if not os.path.isfile(path):
        return None
    with open(path) as f:
        return f.read().strip()


def update_branch(repo, name, oid):
    assert oid
    path = _branch_path(repo, name)
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, 'w') as f:
        f.write(oid)
    logger.debug('branch %s -> %s', name, oid[:10])


def delete_branch(repo, name):
    os.remove(_branch_path(repo, name))


def iter_branch_names(repo):
    heads = _path(repo, 'refs', 'heads')
    return iter(sorted(unescape_branch_name(name) for name in os.listdir(heads)))


def get_head_branch(repo):
    with open(_path(repo, 'HEAD')) as f:
        return f.read().strip()


def set_head_branch(repo, name):
    with open(_path(repo, 'HEAD'), 'w') as f:
        f.write(name)
    logger.debug('HEAD -> %s', name)


class Index:
    """Pending changes against the current commit.

    ``additions`` maps a path to the blob staged for it, ``removals`` holds the
    paths that the next commit drops. A path is never in both.
    """

    def __init__(self, additions=None, removals=None):
        self._additions = dict(additions or {})
        self._removals = set(removals or ())

    @property
    def additions(self):
        return dict(self._additions)

    @property
    def removals(self):
        return frozenset(self._removals)

    def staged_blob(self, path):
        return self._additions.get(path)

    def stage_addition(self, path, oid):
        self._removals.discard(path)
        self._additions[path] = oid

    def stage_removal(self, path):
        self._additions.pop(path, None)
        self._removals.add(path)

    def discard(self, path):
        self._additions.pop(path, None)
        self._removals.discard(path)

    def clear(self):
        self._additions.clear()
        self._removals.clear()

    def is_empty(self):
        return not self._additions and not self._removals

    def to_json(self):
        return {'additions': dict(sorted(self._additions.items())),
                'removals': sorted(self._removals)}

    @classmethod
    def from_json(cls, value):
        return cls(value.get('additions'), value.get('removals'))


def read_index(repo):
    path = _path(repo, 'index')
    if not os.path.isfile(path):
        return Index()
    with open(path) as f:
        return Index.from_json(json.load(f))


@contextmanager
def get_index(repo):
    #saved only when the block finishes, a failing command leaves the index as it was
    index = read_index(repo)

    yield index

    with open(_path(repo, 'index'), 'w') as f:
        json.dump(index.to_json(), f)


def get_remotes(repo): #remote name -> path of its store, ordered by name
    path = _path(repo, 'remotes')
    if not os.path.isfile(path):
        return {}
    with open(path) as f:
        return dict(sorted(json.load(f).items()))


def set_remotes(repo, remotes):
    with open(_path(repo, 'remotes'), 'w') as f:
        json.dump(remotes, f, sort_keys=True, indent=2)
