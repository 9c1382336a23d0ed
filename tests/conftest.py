import pytest

from content_ranking import Document, DocumentStore, Ranker, SimilarityModel

EXAMPLE_DOCUMENTS = [
    Document("A", body="a robot falls in love", genres="sci-fi"),
    Document("B", body="a love story in paris", genres="romance"),
    Document("C", body="robots and love in space", genres="sci-fi"),
]

FILMS = [
    Document(
        "tt01",
        body="A hacker learns that reality is a simulation run by machines and joins a rebellion",
        genres="Action,Sci-Fi",
        title="The Matrix",
        metadata={"start_year": 1999, "average_rating": 8.7},
    ),
    Document(
        "tt02",
        body="A cyborg assassin is sent back in time to kill the mother of a future rebellion leader",
        genres="Action,Sci-Fi",
        title="The Terminator",
        metadata={"start_year": 1984, "average_rating": 8.1},
    ),
    Document(
        "tt03",
        body="A bookshop owner in London falls in love with a famous actress",
        genres="Comedy,Drama,Romance",
        title="Notting Hill",
    ),
    Document(
        "tt04",
        body="A young man and woman meet on a train and fall in love walking through Vienna",
        genres="Drama,Romance",
        title="Before Sunrise",
    ),
    Document(
        "tt05",
        body="The crew of a space freighter is hunted by a deadly alien creature",
        genres="Horror,Sci-Fi",
        title="Alien",
    ),
    Document(
        "tt06",
        body="A detective hunts a crew of professional thieves in Los Angeles",
        genres="Action,Crime,Drama",
        title="Heat",
    ),
    Document("tt07", body=None, genres="Drama", title="Untitled Drama"),
    Document(
        "tt08",
        body="A lonely robot left on earth falls in love with a robot sent from space",
        genres="Animation, Sci-Fi, Romance",
        title="WALL-E",
    ),
]


@pytest.fixture
def example_store():
    return DocumentStore(EXAMPLE_DOCUMENTS)


@pytest.fixture
def example_model(example_store):
    return SimilarityModel.build(example_store)


@pytest.fixture
def example_ranker(example_model):
    return Ranker(example_model)


@pytest.fixture
def film_store():
    return DocumentStore(FILMS)


@pytest.fixture
def film_model(film_store):
    return SimilarityModel.build(film_store)


@pytest.fixture
def film_ranker(film_model):
    return Ranker(film_model)
