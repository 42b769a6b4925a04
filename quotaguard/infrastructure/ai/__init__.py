"""AI Model Implementations.

Contains specific clients/adapters for different text-generation providers
(Groq, OpenAI), each implementing the `TextGenerationModel` interface from the
domain layer and surfacing failures as typed `ApiCallError`s.
"""
