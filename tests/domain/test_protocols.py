import unittest

from src.keysolver.domain._blob import IBlob
from src.keysolver.domain._buffer_ops import IBufferOps
from src.keysolver.domain._device import Device
from src.keysolver.domain._net import INet
from src.keysolver.domain._parameter import IParameter
from src.keysolver.domain._update_rule import IUpdateRule
from src.keysolver.infrastructure._parameter import Parameter
from src.keysolver.infrastructure.blob._blob import Blob
from src.keysolver.infrastructure.config._solver_config import SolverConfig
from src.keysolver.infrastructure.net._net import Net
from src.keysolver.infrastructure.ops._cuda_ops import CudaBufferOps
from src.keysolver.infrastructure.ops._host_ops import HostBufferOps
from src.keysolver.infrastructure.solvers.rules import update_rule_class


class TestProtocolConformance(unittest.TestCase):
    def test_blob_conforms_to_iblob(self):
        self.assertIsInstance(Blob((2, 3)), IBlob)

    def test_parameter_conforms_to_iparameter(self):
        p = Parameter((2,), owner="ip")
        self.assertIsInstance(p, IParameter)
        self.assertIsInstance(p, IBlob)

    def test_buffer_ops_conform(self):
        self.assertIsInstance(HostBufferOps(), IBufferOps)
        self.assertIsInstance(CudaBufferOps(Device("cuda:0"), kernels=object()), IBufferOps)

    def test_update_rules_conform(self):
        cfg = SolverConfig(net_param={"layers": []})
        for name in ("SGD", "NESTEROV", "ADAGRAD", "RMSPROP", "ADADELTA"):
            with self.subTest(rule=name):
                self.assertIsInstance(update_rule_class(name)(cfg), IUpdateRule)

    def test_net_conforms_to_inet(self):
        self.assertIsInstance(Net({"name": "empty", "layers": []}), INet)


if __name__ == "__main__":
    unittest.main()
