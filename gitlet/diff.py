"""Three-way merge of file maps.

Nothing in here touches the disk: the merge is decided on blob ids alone and
the caller carries the decisions out on the working tree and the index.
"""
import logging

from collections import namedtuple

logger = logging.getLogger(__name__)

CONFLICT_START = b'<<<<<<< HEAD\n'
CONFLICT_SEPARATOR = b'=======\n'
CONFLICT_END = b'>>>>>>>\n'

# merged: the resulting path -> blob id map, conflicted paths left out
# take_other: paths whose blob comes from the other side
# remove: paths the merge deletes
# conflicts: paths both sides changed in different ways
MergeResult = namedtuple('MergeResult', ['merged', 'take_other', 'remove', 'conflicts'])


def compare_trees(*trees): #yields path and its blob id in each tree, None where missing
    paths = set()
    for tree in trees:
        paths.update(tree.keys())
    for path in sorted(paths):
        yield (path, *(tree.get(path) for tree in trees))


def _merge_blobs(o_split, o_current, o_other):
    if o_split is None:
        if o_current is None: #only the other side added it
            return 'take'
        if o_other is None: #only this side added it
            return 'keep'
        return 'conflict'

    current_changed = o_current != o_split
    other_changed = o_other != o_split
    if not current_changed:
        return 'remove' if o_other is None else 'take'
    if not other_changed:
        return 'keep'
    return 'conflict'


def merge_trees(t_split, t_current, t_other):
    merged = dict(t_current)
    take_other, remove, conflicts = set(), set(), set()

    for path, o_split, o_current, o_other in compare_trees(t_split, t_current, t_other):
        if o_current == o_other:
            continue
        action = _merge_blobs(o_split, o_current, o_other)
        if action == 'take':
            merged[path] = o_other
            take_other.add(path)
        elif action == 'remove':
            del merged[path]
            remove.add(path)
        elif action == 'conflict':
            merged.pop(path, None)
            conflicts.add(path)
            logger.info('conflict in %s', path)

    return MergeResult(merged=merged, take_other=frozenset(take_other),
                       remove=frozenset(remove), conflicts=frozenset(conflicts))


def conflict_content(current, other):
    """The file written for a conflicted path.

    Either side is None when that side has no such file.
    """
    return (CONFLICT_START + (current or b'') + CONFLICT_SEPARATOR
            + (other or b'') + CONFLICT_END)
