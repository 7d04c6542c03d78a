#!/usr/bin/env python
#
# (c) Copyright 2021 by Coinkite Inc. This file is covered by license found in COPYING-CC.
#
# To use this, install with:
#
#   pip install --editable '.[cli]'
#
# That will create the command "avaxledger" in your path.
#
#
import click, sys, logging

from avaxledger.utils import B2A, str2path, path2str, none_hardened
from avaxledger.constants import HARDENED
from avaxledger.exceptions import LedgerError
from avaxledger.transport import find_devices
from avaxledger.proto import LedgerSession
from avaxledger import __version__

# dict of options that apply to all commands
global global_opts
global_opts = dict()

# Cleanup display (supress traceback) for user-feedback exceptions
_sys_excepthook = sys.excepthook
def my_hook(ty, val, tb):
    if issubclass(ty, (LedgerError, RuntimeError)):
        print("FATAL: %s" % val, file=sys.stderr)
    else:
        return _sys_excepthook(ty, val, tb)
sys.excepthook=my_hook

def fail(msg):
    # show message and stop
    click.echo(f"FAILURE: {msg}", err=True)
    sys.exit(1)

def get_session():
    # Pick a device to work with
    for tr in find_devices():
        return LedgerSession(tr)

    fail("No device found. Is it plugged in, unlocked, with the Avalanche app open?")

def parse_suffix(txt):
    # "1/5" or "5" => [1, 5] or [5]; hardened not allowed here
    path = str2path(txt)
    if not none_hardened(path):
        raise click.BadParameter("Hardened components not allowed in suffix: " + txt)
    return path

# Accept any prefix of a command name.
#
# from <https://click.palletsprojects.com/en/8.0.x/advanced/?#command-aliases>
class AliasedGroup(click.Group):
    def get_command(self, ctx, cmd_name):
        rv = click.Group.get_command(self, ctx, cmd_name)
        if rv is not None:
            return rv
        matches = [x for x in self.list_commands(ctx)
                   if x.startswith(cmd_name)]
        if not matches:
            return None
        elif len(matches) == 1:
            return click.Group.get_command(self, ctx, matches[0])
        ctx.fail(f"Abiguous command. Pick one of: {' | '.join(sorted(matches))}")

    def resolve_command(self, ctx, args):
        # always return the full command name
        _, cmd, args = super().resolve_command(ctx, args)
        return cmd.name, cmd, args


#
# Options we want for all commands
#
@click.group(cls=AliasedGroup)
@click.option('--verbose', '-v', is_flag=True,
                    help="Show traffic with device.")
@click.option('--pdb', is_flag=True,
                    help="Prepare patient for surgery to remove bugs.")
@click.version_option(version=__version__)
def main(**kws):
    '''
    Talk to the Avalanche app on a Ledger: addresses and signatures.

    You can use "ver", or "v" for "version": any distinct prefix for all commands.
    '''
    # implement PDB option here
    if kws.pop('pdb', False):
        import pdb, sys
        def doit(ex_cls, ex, tb):
            pdb.pm()
        sys.excepthook = doit

    if kws.get('verbose'):
        logging.basicConfig(level=logging.DEBUG, format='%(name)s: %(message)s')

    # global options, mostly not considered here
    global global_opts
    global_opts.update(kws)


@main.command('list')
def list_devices():
    "List all devices detected, including emulator."

    count = 0
    for tr in find_devices():
        click.echo(repr(LedgerSession(tr)))
        tr.close()
        count += 1

    if not count:
        click.echo("(none found)")

@main.command('version')
def get_version():
    "Get the version of the Avalanche app running on the device"

    with get_session() as dev:
        v = dev.version()

    click.echo(f'{v.name} {v.version} (commit {v.commit})')

@main.command('address')
@click.argument('hrp', type=str, metavar="HRP")
@click.argument('index', type=click.IntRange(min=0, max=HARDENED-1), default=0)
@click.option('--change', '-c', type=click.IntRange(min=0, max=HARDENED-1), default=0,
                    help="Change index: 0=receiving 1=internal")
def get_address(hrp, index, change):
    "Show address at index, after confirming it on the device screen"

    with get_session() as dev:
        addr = dev.address(hrp, index, change_index=change)

    click.echo(addr.addr)

@main.command('addresses')
@click.argument('hrp', type=str, metavar="HRP")
@click.option('--count', '-n', type=click.IntRange(min=1), default=10, help="How many")
@click.option('--start', '-s', type=click.IntRange(min=0, max=HARDENED-1), default=0,
                    help="First address index")
@click.option('--change', '-c', type=click.IntRange(min=0, max=HARDENED-1), default=0,
                    help="Change index: 0=receiving 1=internal")
def list_addresses(hrp, count, start, change):
    "List many addresses, derived here from the account xpub (no prompts)"

    with get_session() as dev:
        addrs = dev.addresses(hrp, range(start, start+count), change_index=change)
        acct = [c | HARDENED for c in dev.config.account_path]

    for a in addrs:
        click.echo('%s  %s' % (path2str(acct + list(a.path_suffix)), a.addr))

@main.command('xpub')
@click.option('--change', '-c', type=click.IntRange(min=0, max=HARDENED-1), default=0,
                    help="Change index: 0=receiving 1=internal")
def get_xpub(change):
    "Show public key and chain code for m/44h/9000h/0h/<change>"

    with get_session() as dev:
        xp = dev.get_extended_pubkey(change)

    click.echo('pubkey: ' + B2A(xp.sec()))
    click.echo('chain_code: ' + B2A(xp.chain_code))

@main.command('sign-hash')
@click.argument('digest', type=str, metavar="HEX")
@click.argument('suffixes', type=str, nargs=-1, required=True, metavar="0/1 [0/3 ...]")
def sign_hash(digest, suffixes):
    "Sign a 32-byte hash with the keys at each path suffix"
    try:
        md = bytes.fromhex(digest)
    except ValueError:
        fail("Hash must be hex")
    if len(md) != 32:
        fail("Hash must be exactly 32 bytes")

    paths = [parse_suffix(s) for s in suffixes]

    with get_session() as dev:
        sigs = dev.sign_hash(md, paths)

    for s, sig in zip(suffixes, sigs):
        click.echo('%s: %s' % (s, B2A(sig)))

@main.command('sign-tx')
@click.argument('txfile', type=click.File('rb'), metavar="FILE")
@click.argument('suffixes', type=str, nargs=-1, required=True, metavar="0/1 [0/3 ...]")
@click.option('--change-path', '-c', type=str, default=None, metavar="1/5",
                    help="Path suffix of our change output, if any")
def sign_tx(txfile, suffixes, change_path):
    "Sign a serialized transaction (binary file) with the keys at each path suffix"
    raw = txfile.read()
    if not raw:
        fail("Transaction file is empty")

    paths = [parse_suffix(s) for s in suffixes]
    change = parse_suffix(change_path) if change_path else None

    with get_session() as dev:
        got = dev.sign_transaction(raw, paths, change_path=change)

    click.echo('hash: ' + B2A(got.hash))
    for s, sig in zip(suffixes, got.signatures):
        click.echo('%s: %s' % (s, B2A(sig)))

# EOF
