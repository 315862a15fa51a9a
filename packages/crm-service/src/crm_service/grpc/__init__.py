"""gRPC transport: Struct codec, servicer, interceptors and health."""
