"""Document parse pipeline: step runtime, page parsing, finalize and orchestration."""
