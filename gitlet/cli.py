import argparse  #command-line arguments
import datetime
import logging
import os

from . import base
from . import data
from . import remote
from .errors import GitletError, ValidationError

logger = logging.getLogger(__name__)

LOG_LEVEL_ENV = 'GITLET_LOG_LEVEL'


def main(argv=None):
    args = parse_args(argv) #whatever is written in the terminal
    _configure_logging(args.verbose)
    args.repo = data.open_repo(args.work_tree or os.getcwd())
    try:
        if args.command != 'init' and not data.is_initialized(args.repo):
            raise ValidationError('Not in an initialized Gitlet directory.')
        args.func(args)
    except GitletError as e:
        logger.debug('%s failed: %r', args.command, e)
        print(e)
        return 1
    return 0


def _configure_logging(verbose):
    if verbose:
        level = logging.DEBUG if verbose > 1 else logging.INFO
    else:
        level = os.environ.get(LOG_LEVEL_ENV, 'WARNING').upper()
    logging.basicConfig(level=level, format='%(levelname)s %(name)s: %(message)s')


def parse_args(argv=None):
    parser = argparse.ArgumentParser(prog='gitlet')
    parser.add_argument('-v', '--verbose', action='count', default=0)
    parser.add_argument('-C', '--work-tree', help='run as if started in this directory')
    commands = parser.add_subparsers(dest='command')
    commands.required = True

    init_parser = commands.add_parser('init')
    init_parser.set_defaults(func=init)

    add_parser = commands.add_parser('add')
    add_parser.set_defaults(func=add)
    add_parser.add_argument('file')

    rm_parser = commands.add_parser('rm')
    rm_parser.set_defaults(func=rm)
    rm_parser.add_argument('file')

    commit_parser = commands.add_parser('commit')
    commit_parser.set_defaults(func=commit)
    commit_parser.add_argument('message')

    log_parser = commands.add_parser('log')
    log_parser.set_defaults(func=log)

    global_log_parser = commands.add_parser('global-log')
    global_log_parser.set_defaults(func=global_log)

    find_parser = commands.add_parser('find')
    find_parser.set_defaults(func=find)
    find_parser.add_argument('message')

    status_parser = commands.add_parser('status')
    status_parser.set_defaults(func=status)

    #checkout BRANCH | checkout -- FILE | checkout COMMIT -- FILE, '--' has to survive parsing
    checkout_parser = commands.add_parser('checkout')
    checkout_parser.set_defaults(func=checkout)
    checkout_parser.add_argument('operands', nargs=argparse.REMAINDER)

    branch_parser = commands.add_parser('branch')
    branch_parser.set_defaults(func=branch)
    branch_parser.add_argument('name')

    rm_branch_parser = commands.add_parser('rm-branch')
    rm_branch_parser.set_defaults(func=rm_branch)
    rm_branch_parser.add_argument('name')

    reset_parser = commands.add_parser('reset')
    reset_parser.set_defaults(func=reset)
    reset_parser.add_argument('commit')

    merge_parser = commands.add_parser('merge')
    merge_parser.set_defaults(func=merge)
    merge_parser.add_argument('branch')

    add_remote_parser = commands.add_parser('add-remote')
    add_remote_parser.set_defaults(func=add_remote)
    add_remote_parser.add_argument('name')
    add_remote_parser.add_argument('path')

    rm_remote_parser = commands.add_parser('rm-remote')
    rm_remote_parser.set_defaults(func=rm_remote)
    rm_remote_parser.add_argument('name')

    for name, func in (('push', push), ('fetch', fetch), ('pull', pull)):
        remote_parser = commands.add_parser(name)
        remote_parser.set_defaults(func=func)
        remote_parser.add_argument('remote')
        remote_parser.add_argument('branch')

    return parser.parse_args(argv)


def _path(args, name): #paths on the command line are relative to where we were started
    return os.path.join(os.getcwd(), name) if not args.work_tree else name


def init(args):
    base.init(args.repo)
    print(f'Initialized empty gitlet repository in {args.repo.git_dir}')


def add(args):
    base.add(args.repo, _path(args, args.file))


def rm(args):
    base.remove(args.repo, _path(args, args.file))


def commit(args):
    base.commit(args.repo, args.message)


def _format_commit(oid, commit):
    lines = ['===', f'commit {oid}']
    if commit.merge_parent:
        lines.append(f'Merge: {commit.parent[:7]} {commit.merge_parent[:7]}')
    when = datetime.datetime.fromtimestamp(commit.timestamp).astimezone()
    lines.append(f'Date: {when:%a %b} {when.day} {when:%H:%M:%S %Y %z}')
    lines.append(commit.message)
    return '\n'.join(lines) + '\n'


def log(args):
    for oid, commit in base.log(args.repo):
        print(_format_commit(oid, commit))


def global_log(args):
    for oid, commit in base.global_log(args.repo):
        print(_format_commit(oid, commit))


def find(args):
    for oid in base.find(args.repo, args.message):
        print(oid)


def status(args):
    st = base.status(args.repo)
    print('=== Branches ===')
    for name in st.branches:
        prefix = '*' if name == st.branch else ''
        print(f'{prefix}{name}')
    print()
    print('=== Staged Files ===')
    print(''.join(f'{path}\n' for path in st.staged))
    print('=== Removed Files ===')
    print(''.join(f'{path}\n' for path in st.removed))
    print('=== Modifications Not Staged For Commit ===')
    print(''.join(f'{path} ({kind})\n' for path, kind in st.modified))
    print('=== Untracked Files ===')
    print(''.join(f'{path}\n' for path in st.untracked))


def checkout(args):
    operands = args.operands
    if len(operands) == 1 and operands[0] != '--':
        base.checkout_branch(args.repo, operands[0])
    elif len(operands) == 2 and operands[0] == '--':
        base.checkout_file(args.repo, _path(args, operands[1]))
    elif len(operands) == 3 and operands[1] == '--':
        base.checkout_file(args.repo, _path(args, operands[2]), operands[0])
    else:
        raise ValidationError('Incorrect operands.')


def branch(args):
    base.create_branch(args.repo, args.name)


def rm_branch(args):
    base.remove_branch(args.repo, args.name)


def reset(args):
    base.reset(args.repo, args.commit)


def _report_merge(outcome):
    if outcome.kind == 'ancestor':
        print('Given branch is an ancestor of the current branch.')
    elif outcome.kind == 'fast-forward':
        print('Current branch fast-forwarded.')
    elif outcome.conflicts:
        print('Encountered a merge conflict.')


def merge(args):
    _report_merge(base.merge(args.repo, args.branch))


def add_remote(args):
    remote.add_remote(args.repo, args.name, args.path)


def rm_remote(args):
    remote.remove_remote(args.repo, args.name)


def push(args):
    remote.push(args.repo, args.remote, args.branch)


def fetch(args):
    remote.fetch(args.repo, args.remote, args.branch)


def pull(args):
    _report_merge(remote.pull(args.repo, args.remote, args.branch))
