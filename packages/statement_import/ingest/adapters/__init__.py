"""Format adapters turning statement text into ``RawTransactionRecord`` rows."""
