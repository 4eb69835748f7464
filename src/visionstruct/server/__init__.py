"""HTTP surface of the VisionStruct server: SSE transport, sessions and protocol handling."""
