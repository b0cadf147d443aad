"""AceMock exam engine: sharded question extraction with Gemini."""
