"""witxgen - generate Kotlin/Wasm WASI bindings from witx interface descriptions."""
