"""
Interactive shells for the billing roles.

Each role gets a command loop around its state object. Bad input is reported
and the shell carries on. A failed signature, freshness or consistency check
on received data, or a broken channel, ends the shell with `failed` set, so
no further data is accepted from that peer.
"""

import cmd
import logging

from billing_errors import (
    BillRejectedError,
    BillingError,
    TransportError,
    ValidationError,
)

logger = logging.getLogger(__name__)


class BillingShell(cmd.Cmd):
    """Commands common to every role: help, exit."""

    def __init__(self, party, stdin=None, stdout=None):
        super().__init__(stdin=stdin, stdout=stdout)
        if stdin is not None:
            self.use_rawinput = False
        self.party = party
        self.prompt = f"{party.role}> "
        self.failed = False

    def say(self, text: str = "") -> None:
        print(text, file=self.stdout)

    def complain_arg(self, arg: str) -> None:
        if arg.strip():
            self.say("This command did not require an argument")

    def emptyline(self):
        self.say()

    def default(self, line):
        name = line.split()[0] if line.split() else line
        self.say(f"Ignoring unrecognised command {name}. Use help to view available commands")

    def onecmd(self, line):
        try:
            return super().onecmd(line)
        except BillRejectedError as e:
            self.say(f"Bill rejected: {e.reason}")
            return False
        except ValidationError as e:
            self.say(f"Invalid input: {e}")
            return False
        except BillingError as e:
            logger.error("%s: %s", type(e).__name__, e)
            self.say(f"Fatal: {e}")
            self.failed = True
            return True

    def do_exit(self, arg):
        """Closes the program"""
        self.complain_arg(arg)
        self.say("Goodbye")
        return True

    def do_EOF(self, arg):
        self.say()
        return self.do_exit("")

    def postloop(self):
        self.party.close()


class MeterShell(BillingShell):

    def do_consume(self, arg):
        """consume CONS HOUR: Record CONS units consumed in HOUR of the week"""
        args = arg.split()
        if len(args) != 2:
            self.say("Usage: consume CONS HOUR")
            return
        scheme = self.party.scheme
        try:
            cons = scheme.parse(args[0])
            hour = int(args[1])
        except (BillingError, ValueError):
            self.say("Usage: consume CONS HOUR")
            return
        self.party.record(hour, cons)
        self.say(f"Sent {scheme.format(cons)} units for hour {hour}")


class CustomerShell(BillingShell):

    def do_get_cons(self, arg):
        """Read new consumption records from the meter"""
        self.complain_arg(arg)
        count = self.party.read_meter_messages()
        self.say(f"Read {count} new consumption records")

    def do_get_prices(self, arg):
        """Check for new prices from the provider"""
        self.complain_arg(arg)
        if self.party.read_provider_messages():
            self.say("Prices updated")
        else:
            self.say("No new prices")

    def do_send_bill(self, arg):
        """Send the bill for all recorded consumption to the provider"""
        self.complain_arg(arg)
        proof = self.party.send_billing_information()
        amount = self.party.scheme.bill_value(proof.bill)
        self.say(f"Sent bill of {amount} over {len(proof.rows)} readings")

    def do_cons_table(self, arg):
        """Print the consumption recorded since the last bill"""
        self.complain_arg(arg)
        table = self.party.consumption_table
        if not table:
            self.say("No unbilled consumption")
            return
        self.say("Hour\tUnits\tPrice")
        for row in table:
            price = self.party.prices[row.hour_of_week]
            self.say(f"{row.hour_of_week}\t{row.cons}\t{price}")


class ProviderShell(BillingShell):

    def do_get_bill(self, arg):
        """Wait for the customer's bill, verify it and print the amount due"""
        self.complain_arg(arg)
        try:
            self.party.receive_billing_information(block=True)
        except TransportError:
            if self.party.channel.peer_closed:
                raise
            self.say("No bill received")
        self.say(f"Amount due: {self.party.pay_bill()}")

    def do_change_price(self, arg):
        """change_price NEW_PRICE HOUR: Set the price for HOUR of the week and send the prices"""
        args = arg.split()
        if len(args) != 2:
            self.say("Usage: change_price NEW_PRICE HOUR")
            return
        scheme = self.party.scheme
        try:
            price = scheme.parse(args[0])
            hour = int(args[1])
        except (BillingError, ValueError):
            self.say("Usage: change_price NEW_PRICE HOUR")
            return
        self.party.change_price(hour, price)
        self.say(f"Price for hour {hour} is now {scheme.format(price)}")


SHELLS = {
    "meter": MeterShell,
    "customer": CustomerShell,
    "provider": ProviderShell,
}


def make_shell(party, stdin=None, stdout=None) -> BillingShell:
    return SHELLS[party.role](party, stdin=stdin, stdout=stdout)
