"""Provider client implementations, one subpackage per messaging backend."""
