from xmpp_config import Configuration

if __name__ == "__main__":
    # First access loads the embedded default document
    print("Reply timeout:", Configuration.get_reply_timeout())
    print("SASL mechanisms:", Configuration.get_sasl_mechanisms())
    print("Version:", Configuration.get_version())
