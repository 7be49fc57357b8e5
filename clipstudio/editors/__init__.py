"""Output editors: clip cutting and transcript export."""
