import io

from xmpp_config import ClientConfiguration, extension

config = ClientConfiguration()


@extension("example.sasl")
class ExternalMechanism:
    """Startup extension adding SASL EXTERNAL ahead of the document's mechanisms."""

    def initialize(self) -> None:
        config.add_sasl_mechanism("EXTERNAL")


DOCUMENT = b"""<xmppConfig>
    <startupClasses>
        <className>example.sasl</className>
    </startupClasses>
    <optionalStartupClasses>
        <className>some_uninstalled_plugin.Provider</className>
        <className>collections.OrderedDict</className>
    </optionalStartupClasses>
    <mechName>PLAIN</mechName>
</xmppConfig>
"""

if __name__ == "__main__":
    config.set_config_stream(io.BytesIO(DOCUMENT))
    print("Mechanisms:", config.get_sasl_mechanisms())
    for outcome in config.load_report.outcomes():
        print(f"{outcome.kind.value:>9}  {outcome.subject}  {outcome.message}")
