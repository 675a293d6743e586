"""
Command-line entry point for the three-party billing demo.

    python -m distributed.main --keygen FILE
    python -m distributed.main --meter --sign-key SK [--dh-params FILE] [--lan-socket ADDR]
    python -m distributed.main --customer --meter-pk PK --provider-pk PK [--dh-params FILE]
                               [--lan-socket ADDR] [--wan-socket ADDR]
    python -m distributed.main --provider --sign-key SK --meter-pk PK [--dh-params FILE]
                               [--wan-socket ADDR]

The customer listens for the meter on the LAN socket and connects to the
provider on the WAN socket. The provider listens on the WAN socket.
"""

import argparse
import logging
import sys

from billing_consumption import PriceTable, get_scheme
from billing_customer import CustomerState
from billing_meter import MeterState
from billing_protocol import Keys
from billing_provider import ProviderState
from billing_utils import key_gen_to_file, load_signing_key, load_verifying_key
from commitments import read_or_gen_params
from distributed.config import config, parse_socket_addr
from distributed.shell import make_shell
from distributed.transport import connect, listen

logger = logging.getLogger(__name__)

NOTICE = ("This program is free software: you are free to change and redistribute it.\n"
          "There is NO WARRANTY, to the extent permitted by law.\n"
          "The cryptography used has not been reviewed by any experts. "
          "You should not use it for anything serious.")

# Options each mode requires and refuses
MODE_OPTIONS = {
    "keygen": (set(), {"sign_key", "meter_pk", "provider_pk", "dh_params", "lan_socket", "wan_socket"}),
    "meter": ({"sign_key"}, {"meter_pk", "provider_pk", "wan_socket"}),
    "customer": ({"meter_pk", "provider_pk"}, {"sign_key"}),
    "provider": ({"sign_key", "meter_pk"}, {"provider_pk", "lan_socket"}),
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="smart-billing",
        description="Privacy-friendly three-party smart meter billing.",
        epilog=NOTICE,
    )

    modes = parser.add_mutually_exclusive_group(required=True)
    modes.add_argument("--keygen", metavar="OUTPUT_FILE",
                       help="Generate a signing keypair into OUTPUT_FILE and OUTPUT_FILE.pub")
    modes.add_argument("--meter", action="store_true", help="Start a meter")
    modes.add_argument("--customer", action="store_true", help="Start a customer")
    modes.add_argument("--provider", action="store_true", help="Start a provider")

    parser.add_argument("-k", "--sign-key", metavar="SIGN_KEY",
                        help="Secret key for signing billing messages")
    parser.add_argument("-m", "--meter-pk", metavar="PUBKEY",
                        help="Public key of the meter")
    parser.add_argument("-s", "--provider-pk", metavar="PUBKEY",
                        help="Public key of the provider")
    parser.add_argument("-p", "--dh-params", metavar="DH_PARAMS",
                        help=f"Commitment parameter file, generated if missing (default {config.dh_params})")
    parser.add_argument("-l", "--lan-socket", metavar="IPADDR:PORT",
                        help=f"Customer-meter socket (default {config.lan_socket})")
    parser.add_argument("-w", "--wan-socket", metavar="IPADDR:PORT",
                        help=f"Customer-provider socket (default {config.wan_socket})")
    parser.add_argument("--scheme", choices=["integer", "floating"], default=config.scheme,
                        help=f"Numeric domain of readings and prices (default {config.scheme})")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def selected_mode(args: argparse.Namespace) -> str:
    if args.keygen:
        return "keygen"
    for mode in ("meter", "customer", "provider"):
        if getattr(args, mode):
            return mode
    raise ValueError("No mode selected")


def check_options(parser: argparse.ArgumentParser, args: argparse.Namespace, mode: str) -> None:
    required, refused = MODE_OPTIONS[mode]
    # --sign-key is optional for keygen: it names a second keypair to generate
    if mode == "keygen":
        refused = refused - {"sign_key"}

    missing = sorted(opt for opt in required if getattr(args, opt) is None)
    if missing:
        parser.error(f"--{mode} requires " + ", ".join("--" + m.replace("_", "-") for m in missing))

    extra = sorted(opt for opt in refused if getattr(args, opt) is not None)
    if extra:
        parser.error(", ".join("--" + e.replace("_", "-") for e in extra)
                     + f" cannot be used with --{mode}")

    for opt in ("lan_socket", "wan_socket"):
        value = getattr(args, opt)
        if value is not None:
            try:
                parse_socket_addr(value)
            except ValueError as e:
                parser.error(str(e))


def build_party(mode: str, args: argparse.Namespace):
    """Load keys and parameters, open the channels and create the role's state."""
    scheme = get_scheme(args.scheme)
    params = read_or_gen_params(args.dh_params or config.dh_params, config.dh_bits)
    lan = parse_socket_addr(args.lan_socket) if args.lan_socket else config.lan_addr
    wan = parse_socket_addr(args.wan_socket) if args.wan_socket else config.wan_addr
    timeout, retries = config.read_timeout, config.read_retries

    if mode == "meter":
        keys = Keys(load_signing_key(args.sign_key))
        channel = connect(lan, timeout=timeout, retries=retries)
        return MeterState(channel, keys, params, scheme)

    if mode == "customer":
        meter_pk = load_verifying_key(args.meter_pk)
        provider_pk = load_verifying_key(args.provider_pk)
        provider_channel = connect(wan, timeout=timeout, retries=retries)
        meter_channel = listen(lan, timeout=timeout)
        return CustomerState(meter_channel, provider_channel, PriceTable.null(scheme),
                             provider_pk, meter_pk, params)

    keys = Keys(load_signing_key(args.sign_key), load_verifying_key(args.meter_pk))
    channel = listen(wan, timeout=timeout)
    return ProviderState(channel, PriceTable.null(scheme), keys, params,
                         read_retries=retries, retry_interval=timeout)


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    mode = selected_mode(args)
    check_options(parser, args, mode)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s: %(message)s",
    )

    if mode == "keygen":
        if args.sign_key:
            key_gen_to_file(args.sign_key)
            print(f"Wrote {args.sign_key} and {args.sign_key}.pub")
        key_gen_to_file(args.keygen)
        print(f"Wrote {args.keygen} and {args.keygen}.pub")
        return 0

    party = build_party(mode, args)
    shell = make_shell(party)
    shell.cmdloop()
    return 1 if shell.failed else 0


if __name__ == "__main__":
    sys.exit(main())
