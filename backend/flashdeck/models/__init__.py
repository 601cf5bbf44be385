from flashdeck.models.deck import Deck, DeckCreate, DeckList, DeckUpdate
from flashdeck.models.flashcard import (
    Flashcard,
    FlashcardCreate,
    FlashcardList,
    FlashcardSchedule,
    FlashcardSource,
    FlashcardUpdate,
)
from flashdeck.models.generation import (
    GeneratedFlashcard,
    GenerateFlashcardsRequest,
    GenerationResult,
)
from flashdeck.models.review import ReviewCreate, ReviewEvent, ReviewQueue, ReviewResult

__all__ = [
    "Deck",
    "DeckCreate",
    "DeckList",
    "DeckUpdate",
    "Flashcard",
    "FlashcardCreate",
    "FlashcardList",
    "FlashcardSchedule",
    "FlashcardSource",
    "FlashcardUpdate",
    "GenerateFlashcardsRequest",
    "GeneratedFlashcard",
    "GenerationResult",
    "ReviewCreate",
    "ReviewEvent",
    "ReviewQueue",
    "ReviewResult",
]
