import pytest

from kubescrape.kube import (
    Clientset,
    Node,
    ObjectMeta,
    ObjectNotFound,
    Pod,
    Secret,
    Service,
    everything,
    selector_from_set,
)
from kubescrape.listers import (
    new_namespace_pod_listerer,
    new_namespace_secret_listerer,
    new_node_lister,
    new_services_lister,
)

NODE_NAME = "name"
TEST_NAMESPACE = "testNamespace"
POD_NAME = "testPod"
MULTI_LABELS = {"foo": "matching", "bar": "matching"}
LABELS = {"baz": "matching"}
SECRET_NAME = "name"
SECRET_NAMESPACE = "namespace"
DIFFERENT_NAMESPACE = "abcd"


def fake_node():
    return Node(metadata=ObjectMeta(name=NODE_NAME))


def pod_unique():
    return Pod(metadata=ObjectMeta(name=POD_NAME, namespace=TEST_NAMESPACE, labels=dict(LABELS)))


def pod_multi():
    return Pod(
        metadata=ObjectMeta(name="podMultiLabel", namespace=TEST_NAMESPACE, labels=dict(MULTI_LABELS))
    )


def pod_no_selector():
    return Pod(metadata=ObjectMeta(name="podNoSelector", namespace=TEST_NAMESPACE))


def fake_secret(namespace):
    return Secret(
        metadata=ObjectMeta(name=SECRET_NAME, namespace=namespace),
        data={"testData": b"testData"},
    )


def test_nodes_discovery():
    client = Clientset()
    lister = new_node_lister(client)
    with pytest.raises(ObjectNotFound):
        lister.get(NODE_NAME)

    client.create(fake_node())
    assert lister.get(NODE_NAME) == fake_node()

    client.delete(Node.KIND, "", NODE_NAME)
    with pytest.raises(ObjectNotFound):
        lister.get(NODE_NAME)
    lister.stop()


def test_nodes_stop():
    client = Clientset()
    lister = new_node_lister(client)
    lister.stop()
    client.create(fake_node())
    with pytest.raises(ObjectNotFound):
        lister.get(NODE_NAME)


@pytest.mark.parametrize(
    "namespace,selector,expected",
    [
        ("", selector_from_set(LABELS), [pod_unique()]),
        (TEST_NAMESPACE, selector_from_set(LABELS), [pod_unique()]),
        ("", selector_from_set(MULTI_LABELS), [pod_multi()]),
        (TEST_NAMESPACE, selector_from_set({"foo": MULTI_LABELS["foo"]}), [pod_multi()]),
        ("not-matching", selector_from_set(LABELS), []),
        (TEST_NAMESPACE, selector_from_set({"not-matching": "label"}), []),
        (
            TEST_NAMESPACE,
            selector_from_set({"baz": LABELS["baz"], "not-matching": "label"}),
            [],
        ),
    ],
    ids=[
        "pod_when_selector_matches",
        "pod_when_selector_and_namespace_match",
        "pod_when_multilabels_match",
        "pod_when_multilabels_partially_match",
        "no_pod_when_namespace_not_match",
        "no_pod_when_labels_no_match",
        "no_pod_when_partial_multilabel_no_match",
    ],
)
def test_pods_lister_returns(namespace, selector, expected):
    client = Clientset()
    for pod in (pod_unique(), pod_multi(), pod_no_selector()):
        client.create(pod)
    with new_namespace_pod_listerer([namespace], client) as listerer:
        assert listerer.lister(namespace).list(selector) == expected


def test_pod_multi_namespace_discovery():
    different = "differentNamespace"
    foo = {"foo": "matching"}
    client = Clientset(
        pod_unique(), Pod(metadata=ObjectMeta(name="foo", namespace=different, labels=foo))
    )
    with new_namespace_pod_listerer([TEST_NAMESPACE, different], client) as listerer:
        assert len(listerer.lister(TEST_NAMESPACE).list(selector_from_set(LABELS))) == 1
        assert len(listerer.lister(different).list(selector_from_set(foo))) == 1


def test_pods_lister_updates():
    client = Clientset()
    with new_namespace_pod_listerer([TEST_NAMESPACE], client) as listerer:
        lister = listerer.lister(TEST_NAMESPACE)
        assert lister.list(everything()) == []
        client.create(pod_unique())
        assert len(lister.list(everything())) == 1
        client.delete(Pod.KIND, TEST_NAMESPACE, POD_NAME)
        assert lister.list(everything()) == []


def test_pods_lister_stop():
    client = Clientset()
    listerer = new_namespace_pod_listerer([TEST_NAMESPACE], client)
    listerer.stop()
    client.create(pod_unique())
    assert listerer.lister(TEST_NAMESPACE).list(everything()) == []


def test_listerer_unknown_namespace():
    listerer = new_namespace_pod_listerer([TEST_NAMESPACE], Clientset())
    with pytest.raises(KeyError):
        listerer.lister("other")


def test_secrets_discovery():
    client = Clientset()
    with new_namespace_secret_listerer([SECRET_NAMESPACE], client) as listerer:
        lister = listerer.lister(SECRET_NAMESPACE)
        with pytest.raises(ObjectNotFound):
            lister.get(SECRET_NAME)

        client.create(fake_secret(SECRET_NAMESPACE))
        assert lister.get(SECRET_NAME) == fake_secret(SECRET_NAMESPACE)

        client.delete(Secret.KIND, SECRET_NAMESPACE, SECRET_NAME)
        with pytest.raises(ObjectNotFound):
            lister.get(SECRET_NAME)


def test_secrets_multi_namespace_discovery():
    client = Clientset(fake_secret(SECRET_NAMESPACE), fake_secret(DIFFERENT_NAMESPACE))
    listerer = new_namespace_secret_listerer([SECRET_NAMESPACE, DIFFERENT_NAMESPACE], client)
    assert listerer.lister(SECRET_NAMESPACE).get(SECRET_NAME).metadata.name == SECRET_NAME
    found = listerer.lister(DIFFERENT_NAMESPACE).get(SECRET_NAME)
    assert found.metadata.namespace == DIFFERENT_NAMESPACE


def test_secrets_ignore_different_namespaces():
    client = Clientset(Secret(metadata=ObjectMeta(name=SECRET_NAME, namespace=DIFFERENT_NAMESPACE)))
    listerer = new_namespace_secret_listerer([SECRET_NAMESPACE], client)
    with pytest.raises(ObjectNotFound):
        listerer.lister(SECRET_NAMESPACE).get(SECRET_NAME)


def test_secrets_stop():
    client = Clientset()
    listerer = new_namespace_secret_listerer([SECRET_NAMESPACE, DIFFERENT_NAMESPACE], client)
    first = listerer.lister(SECRET_NAMESPACE)
    second = listerer.lister(DIFFERENT_NAMESPACE)
    listerer.stop()
    client.create(fake_secret(SECRET_NAMESPACE))
    client.create(fake_secret(DIFFERENT_NAMESPACE))
    with pytest.raises(ObjectNotFound):
        first.get(SECRET_NAME)
    with pytest.raises(ObjectNotFound):
        second.get(SECRET_NAME)


def test_informer_does_not_hit_backend_repeatedly():
    client = Clientset(fake_secret(SECRET_NAMESPACE))
    lister = new_namespace_secret_listerer([SECRET_NAMESPACE], client).lister(SECRET_NAMESPACE)
    for _ in range(4):
        assert lister.get(SECRET_NAME).metadata.name == SECRET_NAME
    verbs = [verb for verb, _ in client.actions()]
    assert verbs.count("list") == 1
    assert verbs.count("get") == 0


def test_services_discovery():
    client = Clientset()
    lister = new_services_lister(client)
    assert lister.list(everything()) == []

    service = Service(metadata=ObjectMeta(name="test"))
    client.create(service)
    assert lister.list(everything()) == [service]

    client.delete(Service.KIND, "", "test")
    assert lister.list(everything()) == []