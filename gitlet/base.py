import os
import logging
import time

from collections import deque, namedtuple

from . import data
from . import diff
from .errors import NotFound, PreconditionFailed, UntrackedFileConflict, ValidationError

logger = logging.getLogger(__name__)

Status = namedtuple('Status', ['branch', 'branches', 'staged', 'removed', 'modified', 'untracked'])

# kind is 'ancestor' (nothing to do), 'fast-forward' or 'merged'
MergeOutcome = namedtuple('MergeOutcome', ['kind', 'commit', 'conflicts'])


def init(repo):
    return data.init(repo)


def is_ignored(path):
    return path.split('/')[0] == data.GIT_DIR_NAME


def normalize_path(repo, path):
    """Turns a user supplied path into the '/' separated key used in file maps.

    Relative paths are taken relative to the working directory of ``repo``.
    """
    full = os.path.normpath(os.path.join(repo.work_dir, path))
    rel = os.path.relpath(full, repo.work_dir)
    if rel == os.curdir or rel == os.pardir or rel.startswith(os.pardir + os.sep):
        raise ValidationError(f'{path} is outside the repository.')
    rel = rel.replace(os.sep, '/')
    if is_ignored(rel):
        raise ValidationError(f'{path} is inside {data.GIT_DIR_NAME}.')
    return rel


def _work_path(repo, path):
    return os.path.join(repo.work_dir, *path.split('/'))


def _read_file(repo, path):
    with open(_work_path(repo, path), 'rb') as f:
        return f.read()


def _write_file(repo, path, content):
    full = _work_path(repo, path)
    os.makedirs(os.path.dirname(full), exist_ok=True)
    with open(full, 'wb') as f:
        f.write(content)


def _delete_file(repo, path):
    full = _work_path(repo, path)
    if os.path.isfile(full):
        os.remove(full)
    #drop directories the removal left empty, never the work dir itself
    parent = os.path.dirname(full)
    while parent != repo.work_dir and os.path.isdir(parent) and not os.listdir(parent):
        os.rmdir(parent)
        parent = os.path.dirname(parent)


def iter_working_files(repo):
    for root, dirnames, filenames in os.walk(repo.work_dir):
        dirnames[:] = sorted(d for d in dirnames if d != data.GIT_DIR_NAME or root != repo.work_dir)
        for filename in sorted(filenames):
            path = os.path.relpath(os.path.join(root, filename), repo.work_dir).replace(os.sep, '/')
            if is_ignored(path) or not os.path.isfile(os.path.join(root, filename)):
                continue
            yield path


def get_working_tree(repo): #path -> blob id of what is on disk right now, nothing is stored
    return {path: data.hash_blob(_read_file(repo, path)) for path in iter_working_files(repo)}


def get_head(repo):
    return data.get_branch(repo, data.get_head_branch(repo))


def get_head_commit(repo):
    return data.get_commit(repo, get_head(repo))


def _parents(commit):
    return [oid for oid in (commit.parent, commit.merge_parent) if oid]


def iter_first_parent_history(repo, oid):
    while oid:
        commit = data.get_commit(repo, oid)
        yield oid, commit
        oid = commit.parent


def iter_ancestors(repo, oids):
    #every commit reachable from oids over both parent edges, first parents first
    oids = deque(oids)
    visited = set()
    while oids:
        oid = oids.popleft()
        if not oid or oid in visited:
            continue
        visited.add(oid)
        yield oid
        parents = _parents(data.get_commit(repo, oid))
        oids.extendleft(parents[:1])
        oids.extend(parents[1:])


def _visit_next(repo, queue, visited, visited_by_other):
    while queue:
        oid = queue.popleft()
        if oid in visited:
            continue
        visited.add(oid)
        if oid in visited_by_other:
            return oid
        if not data.has_commit(repo, oid): #not in this store
            continue
        queue.extend(_parents(data.get_commit(repo, oid)))
        return None
    return None


def split_point(repo, oid_a, oid_b):
    """Finds the commit the merge of oid_a and oid_b is based on.

    The two sides walk back one commit at a time, taking turns, and the first
    commit one side reaches that the other has already seen wins. In lopsided
    histories that is not always the latest common ancestor; merges rely on
    exactly this choice.
    """
    queue_a, queue_b = deque([oid_a]), deque([oid_b])
    visited_a, visited_b = set(), set()
    while queue_a or queue_b:
        found = _visit_next(repo, queue_a, visited_a, visited_b)
        if found:
            return found
        found = _visit_next(repo, queue_b, visited_b, visited_a)
        if found:
            return found
    return None


def _stage(repo, index, path, content, head_files):
    oid = data.hash_blob(content)
    if oid == head_files.get(path): #same as the current commit, nothing to stage
        index.discard(path)
        return None
    data.put_blob(repo, content)
    index.stage_addition(path, oid)
    return oid


def _unstage(repo, index, path, head_files):
    index.discard(path)
    if path not in head_files:
        return
    index.stage_removal(path)
    full = _work_path(repo, path)
    #a locally edited file stays on disk, the removal is recorded anyway
    if os.path.isfile(full) and data.hash_blob(_read_file(repo, path)) == head_files[path]:
        _delete_file(repo, path)


def add(repo, path):
    path = normalize_path(repo, path)
    if not os.path.isfile(_work_path(repo, path)):
        raise NotFound('File does not exist.')
    head_files = get_head_commit(repo).files
    with data.get_index(repo) as index:
        return _stage(repo, index, path, _read_file(repo, path), head_files)


def remove(repo, path):
    path = normalize_path(repo, path)
    head_files = get_head_commit(repo).files
    with data.get_index(repo) as index:
        if index.staged_blob(path) is None and path not in head_files:
            raise PreconditionFailed('No reason to remove this file.')
        _unstage(repo, index, path, head_files)


def status(repo):
    head_files = get_head_commit(repo).files
    index = data.read_index(repo)
    additions, removals = index.additions, index.removals
    working = get_working_tree(repo)

    staged, modified = [], []
    for path in sorted(set(head_files) | set(additions)):
        if path in removals:
            continue
        expected = additions.get(path, head_files.get(path))
        if path not in working:
            modified.append((path, 'deleted'))
        elif working[path] != expected:
            modified.append((path, 'modified'))
        elif path in additions:
            staged.append(path)
    untracked = [path for path in sorted(working) if path not in head_files and path not in additions]

    return Status(branch=data.get_head_branch(repo), branches=list(data.iter_branch_names(repo)),
                  staged=staged, removed=sorted(removals), modified=modified, untracked=untracked)


def _commit(repo, index, message, merge_parent):
    if not message:
        raise PreconditionFailed('Please enter a commit message.')
    if index.is_empty():
        raise PreconditionFailed('No changes added to the commit.')

    branch = data.get_head_branch(repo)
    parent = data.get_branch(repo, branch)
    files = dict(data.get_commit(repo, parent).files)
    files.update(index.additions)
    for path in index.removals:
        files.pop(path, None)

    oid = data.put_commit(repo, data.make_commit(time.time(), parent, merge_parent, message, files))
    data.update_branch(repo, branch, oid) #the commit is on disk before the branch moves
    index.clear()
    return oid


def commit(repo, message, merge_parent=None):
    with data.get_index(repo) as index:
        return _commit(repo, index, message, merge_parent)


def _check_untracked(repo, head_files, index, target_files, same_content_ok=False):
    additions = index.additions
    in_the_way = []
    for path, oid in get_working_tree(repo).items():
        if path in head_files or path in additions or path not in target_files:
            continue
        if same_content_ok and target_files[path] == oid:
            continue
        in_the_way.append(path)
    if in_the_way:
        raise UntrackedFileConflict(in_the_way)


def _read_tree(repo, current_files, target_files):
    #every blob is read before the first file is touched
    contents = {path: data.get_blob(repo, oid) for path, oid in target_files.items()}
    for path in current_files:
        if path not in target_files:
            _delete_file(repo, path)
    for path, content in sorted(contents.items()):
        _write_file(repo, path, content)


def checkout_commit(repo, oid):
    head_files = get_head_commit(repo).files
    target = data.get_commit(repo, oid)
    with data.get_index(repo) as index:
        _check_untracked(repo, head_files, index, target.files)
        _read_tree(repo, head_files, target.files)
        index.clear()
    logger.debug('checked out %s', oid[:10])


def checkout_branch(repo, name):
    oid = data.get_branch(repo, name)
    if oid is None:
        raise NotFound('No such branch exists.')
    if name == data.get_head_branch(repo):
        raise PreconditionFailed('No need to checkout the current branch.')
    checkout_commit(repo, oid)
    data.set_head_branch(repo, name)


def checkout_file(repo, path, commit_id=None):
    oid = data.resolve_short(repo, commit_id) if commit_id else get_head(repo)
    files = data.get_commit(repo, oid).files
    path = normalize_path(repo, path)
    if path not in files:
        raise NotFound('File does not exist in that commit.')
    _write_file(repo, path, data.get_blob(repo, files[path]))


def reset(repo, commit_id):
    oid = data.resolve_short(repo, commit_id)
    checkout_commit(repo, oid)
    data.update_branch(repo, data.get_head_branch(repo), oid)
    return oid


def create_branch(repo, name):
    if data.get_branch(repo, name) is not None:
        raise PreconditionFailed('A branch with that name already exists.')
    oid = get_head(repo)
    data.update_branch(repo, name, oid)
    return oid


def remove_branch(repo, name):
    if data.get_branch(repo, name) is None:
        raise NotFound('A branch with that name does not exist.')
    if name == data.get_head_branch(repo):
        raise PreconditionFailed('Cannot remove the current branch.')
    data.delete_branch(repo, name)


def log(repo):
    return list(iter_first_parent_history(repo, get_head(repo)))


def global_log(repo):
    return [(oid, data.get_commit(repo, oid)) for oid in data.iter_commit_ids(repo)]


def find(repo, message):
    found = [oid for oid, commit in global_log(repo) if commit.message == message]
    if not found:
        raise NotFound('Found no commit with that message.')
    return found


def merge(repo, branch):
    other = data.get_branch(repo, branch)
    if other is None:
        raise NotFound('A branch with that name does not exist.')
    current_branch = data.get_head_branch(repo)
    if branch == current_branch:
        raise PreconditionFailed('Cannot merge a branch with itself.')

    HEAD = data.get_branch(repo, current_branch)
    c_HEAD = data.get_commit(repo, HEAD)
    c_other = data.get_commit(repo, other)

    with data.get_index(repo) as index:
        if not index.is_empty():
            raise PreconditionFailed('You have uncommitted changes.')
        _check_untracked(repo, c_HEAD.files, index, c_other.files, same_content_ok=True)

        merge_base = split_point(repo, HEAD, other)
        logger.debug('merge base of %s and %s is %s', HEAD[:10], other[:10], merge_base and merge_base[:10])
        if merge_base == other:
            return MergeOutcome(kind='ancestor', commit=HEAD, conflicts=frozenset())

        # Handle fast-forward merge
        if merge_base == HEAD:
            _check_untracked(repo, c_HEAD.files, index, c_other.files)
            _read_tree(repo, c_HEAD.files, c_other.files)
            data.update_branch(repo, current_branch, other)
            return MergeOutcome(kind='fast-forward', commit=other, conflicts=frozenset())

        c_base = data.get_commit(repo, merge_base)
        result = diff.merge_trees(c_base.files, c_HEAD.files, c_other.files)
        if not (result.take_other or result.remove or result.conflicts):
            raise PreconditionFailed('No changes added to the commit.')

        contents = {path: data.get_blob(repo, c_other.files[path]) for path in result.take_other}
        for path in result.conflicts:
            o_current, o_other = c_HEAD.files.get(path), c_other.files.get(path)
            contents[path] = diff.conflict_content(
                o_current and data.get_blob(repo, o_current),
                o_other and data.get_blob(repo, o_other))

        for path in sorted(result.remove):
            _unstage(repo, index, path, c_HEAD.files)
        for path, content in sorted(contents.items()):
            _write_file(repo, path, content)
            _stage(repo, index, path, content, c_HEAD.files)

        if result.conflicts:
            message = 'Encountered a merge conflict.'
        else:
            message = f'Merged {branch} into {current_branch}.'
        oid = _commit(repo, index, message, other)

    return MergeOutcome(kind='merged', commit=oid, conflicts=result.conflicts)
