from kraken_acb.importers.kraken_importer import KrakenImporter, MalformedRow, TradeGroupError

__all__ = ["KrakenImporter", "MalformedRow", "TradeGroupError"]
