"""gitlet error types.

Every failure a command can hit is one of these. They are raised by the core
and turned into a message by the command line layer.
"""


class GitletError(Exception):
    pass


class ValidationError(GitletError):
    """Bad operands, a missing or already existing store, or an unusable path."""


class NotFound(GitletError):
    """A commit, blob, branch, remote or file does not exist."""


class Ambiguous(GitletError):
    """A short commit id matches more than one commit.

    Attributes:
        matches: The full ids sharing the prefix.
    """

    def __init__(self, prefix, matches):
        self.prefix = prefix
        self.matches = sorted(matches)
        super().__init__(f'Commit id {prefix} is ambiguous: {len(self.matches)} commits match.')


class PreconditionFailed(GitletError):
    """The repository is not in a state that allows the command."""


class UntrackedFileConflict(PreconditionFailed):

    def __init__(self, paths):
        self.paths = sorted(paths)
        super().__init__('There is an untracked file in the way; '
                         'delete it, or add and commit it first.')
